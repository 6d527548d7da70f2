"""
CommonBot — platform-agnostic chat bot middleware.
"""

__version__ = "1.0.0"
