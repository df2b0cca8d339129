"""
Client configuration.

All options are fixed when the client is constructed; a client never
changes its transport or endpoint afterwards.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

import requests

from .constants import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT, ENV_ENDPOINT, ENV_TIMEOUT
from .exceptions import ConfigurationError
from .signer import DEFAULT_POLICY, SigningPolicy


@dataclass(frozen=True)
class ClientConfig:
    """
    Options recognized by InfogramClient.

    Attributes:
        session: HTTP transport override; the client creates its own when None
        endpoint: Base URL of the API
        timeout: Default per-call timeout in seconds
        signing_policy: How requests are signed
    """

    session: Optional[requests.Session] = field(default=None, compare=False)
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT
    signing_policy: SigningPolicy = DEFAULT_POLICY

    def __post_init__(self):
        # frozen dataclass, normalize through object.__setattr__
        object.__setattr__(self, "endpoint", (self.endpoint or "").rstrip("/"))
        self.validate()

    def validate(self):
        """Validate configuration values."""
        parts = urlsplit(self.endpoint)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigurationError(f"endpoint must be an http(s) URL, got {self.endpoint!r}")

        if self.timeout is None or self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")

        if not isinstance(self.signing_policy, SigningPolicy):
            raise ConfigurationError("signing_policy must be a SigningPolicy")

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """
        Build a config from INFOGRAM_ENDPOINT and INFOGRAM_TIMEOUT.

        Keyword arguments take precedence over the environment.
        """
        values = {}
        endpoint = os.getenv(ENV_ENDPOINT)
        if endpoint:
            values["endpoint"] = endpoint
        timeout = os.getenv(ENV_TIMEOUT)
        if timeout:
            try:
                values["timeout"] = float(timeout)
            except ValueError as e:
                raise ConfigurationError(f"{ENV_TIMEOUT} must be a number, got {timeout!r}") from e
        values.update(overrides)
        return cls(**values)
