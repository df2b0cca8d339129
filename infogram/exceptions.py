"""
Custom exceptions for the Infogram API client.
"""

from typing import Optional


class InfogramError(Exception):
    """Base exception for Infogram client errors."""
    pass


class ConfigurationError(InfogramError):
    """Raised when client configuration is invalid."""
    pass


class RequestError(InfogramError):
    """Raised when a request cannot be built or has already been sent."""
    pass


class TransportError(InfogramError):
    """Raised when the HTTP request fails."""
    pass


class RequestCancelledError(InfogramError):
    """Raised when a call is aborted by its cancel token or deadline."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class APIError(InfogramError):
    """Raised on a non-2xx response; the message is the raw response body."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DecodeError(InfogramError):
    """Raised when a response body or resource field cannot be decoded."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field
