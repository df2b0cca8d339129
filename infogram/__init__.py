"""
Infogram API Client Library

A Python client for the Infogram REST API. Requests are signed with
HMAC-SHA1 as described in https://developers.infogr.am/rest/request-signing.html

Example usage:
    from infogram import InfogramClient

    with InfogramClient("your-api-key", "your-api-secret") as client:
        for theme in client.themes():
            print(theme.title)
"""

from .client import InfogramClient
from .config import ClientConfig
from .exceptions import (
    InfogramError,
    ConfigurationError,
    RequestError,
    TransportError,
    RequestCancelledError,
    APIError,
    DecodeError
)
from .models import Infographic, Theme, list_of
from .signer import (
    SigningPolicy,
    DEFAULT_POLICY,
    PATH_HEX_POLICY,
    canonical_string,
    compute_signature,
    sign_request
)
from .constants import (
    DEFAULT_ENDPOINT,
    PARAM_API_KEY,
    PARAM_API_SIG,
    EXPORT_FORMATS
)

__version__ = "1.0.0"
__all__ = [
    "InfogramClient",
    "ClientConfig",
    "InfogramError",
    "ConfigurationError",
    "RequestError",
    "TransportError",
    "RequestCancelledError",
    "APIError",
    "DecodeError",
    "Infographic",
    "Theme",
    "list_of",
    "SigningPolicy",
    "DEFAULT_POLICY",
    "PATH_HEX_POLICY",
    "canonical_string",
    "compute_signature",
    "sign_request",
    "DEFAULT_ENDPOINT",
    "PARAM_API_KEY",
    "PARAM_API_SIG",
    "EXPORT_FORMATS"
]
