"""
Error taxonomy for the delivery core.

Refusals of a single send are values (``DeliveryErrorCode``) carried by a
``DeliveryResult``; only wiring mistakes and transport failures are raised.
"""

from enum import Enum


class ConfigurationError(Exception):
    """The bot was wired with a platform it cannot serve. Fatal at construction."""


class TransportError(Exception):
    """A platform call failed."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class DeliveryErrorCode(str, Enum):
    ENDPOINT_CACHE_EMPTY = "endpoint_cache_empty"
    CHANNEL_NOT_FOUND = "channel_not_found"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    TRANSPORT_ERROR = "transport_error"
