"""
Bot core — channel directory, endpoint cache, composer, router and ingestor.
"""
