"""
Infogram REST API client.

This module builds signed requests against the Infogram API, sends them
through a requests session and decodes the responses into resource records.
"""

import json
import logging
import os
import threading
import weakref
from typing import Any, List, Mapping, Optional, Union
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

import requests
from urllib3.exceptions import ReadTimeoutError

from .config import ClientConfig
from .constants import (
    BODY_METHODS,
    DEFAULT_CHUNK_SIZE,
    ENV_API_KEY,
    ENV_API_SECRET,
    EXPORT_FORMATS,
    QUERY_METHODS
)
from .exceptions import (
    APIError,
    ConfigurationError,
    DecodeError,
    RequestCancelledError,
    RequestError,
    TransportError
)
from .models import Infographic, Theme, list_of
from .signer import sign_request

logger = logging.getLogger(__name__)


def _without_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


class InfogramClient:
    """
    Client for the Infogram REST API.

    Every request is signed with the API key and secret. Configuration is
    resolved once in the constructor, so one client can be shared between
    threads.
    """

    def __init__(self, api_key: str, api_secret: str, config: Optional[ClientConfig] = None):
        """
        Initialize the client.

        Args:
            api_key: Public API key, sent with every request
            api_secret: API secret, used only as the HMAC key
            config: Optional transport, endpoint, timeout and signing overrides
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.config = config if config is not None else ClientConfig()

        self._validate_config()

        # Use the caller's session when given; only an owned session is closed
        self._owns_session = self.config.session is None
        self.session = self.config.session if self.config.session is not None else requests.Session()
        self.endpoint = self.config.endpoint

        self._dispatched = weakref.WeakSet()
        self._dispatch_lock = threading.Lock()

    @classmethod
    def from_env(cls, **overrides) -> "InfogramClient":
        """
        Create a client from INFOGRAM_API_KEY and INFOGRAM_API_SECRET.

        Keyword arguments are passed to ClientConfig.from_env().
        """
        return cls(
            os.getenv(ENV_API_KEY, ""),
            os.getenv(ENV_API_SECRET, ""),
            ClientConfig.from_env(**overrides)
        )

    def _validate_config(self):
        """Validate client credentials."""
        if not self.api_key:
            raise ConfigurationError("api_key cannot be empty")

        if not self.api_secret:
            raise ConfigurationError("api_secret cannot be empty")

    def _path(self, *segments) -> str:
        return "/".join(quote(str(segment), safe="") for segment in segments)

    def new_request(self, method: str, path: str, params: Optional[Mapping[str, Any]] = None,
                    data: Optional[Mapping[str, Any]] = None,
                    headers: Optional[Mapping[str, str]] = None,
                    json: Any = None) -> requests.Request:
        """
        Build an unsigned request against the configured endpoint.

        Args:
            method: HTTP method
            path: URL path relative to the endpoint
            params: Query parameters
            data: Form fields for write-style methods
            headers: Extra request headers
            json: JSON body for write-style methods; the auth parameters then
                travel in the query string

        Returns:
            requests.Request ready for sign_request()

        Raises:
            RequestError: If the method is unsupported or the URL is malformed
        """
        method = (method or "").upper()
        if method not in QUERY_METHODS and method not in BODY_METHODS:
            raise RequestError(f"unsupported HTTP method: {method!r}")

        if (data or json is not None) and method in QUERY_METHODS:
            raise RequestError(f"{method} requests cannot carry a body")

        if data and json is not None:
            raise RequestError("a request body is either form data or JSON, not both")

        url = urljoin(self.endpoint + '/', path.lstrip('/'))
        try:
            parts = urlsplit(url)
        except ValueError as e:
            raise RequestError(f"malformed request URL {url!r}: {e}") from e
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise RequestError(f"malformed request URL {url!r}")

        return requests.Request(
            method,
            url,
            params=dict(params or {}),
            data=dict(data or {}),
            headers=dict(headers or {}),
            json=json
        )

    def sign_request(self, request: requests.Request) -> requests.Request:
        """Add api_key and api_sig to the request using the configured policy."""
        return sign_request(request, self.api_key, self.api_secret, self.config.signing_policy)

    def do(self, request: requests.Request, target: Any = None,
           timeout: Optional[float] = None,
           cancel: Optional[threading.Event] = None) -> Any:
        """
        Send a request and handle its response.

        Args:
            request: Signed request; a request can only be sent once
            target: Where the body goes on success. An object with ``write``
                receives the raw bytes; a callable receives the parsed JSON;
                None discards the body.
            timeout: Deadline in seconds, defaults to the configured timeout
            cancel: Cancellation token checked around the transport call

        Returns:
            Bytes written for a sink, the decoded value for a decoder (None
            for an empty body), or None when there is no target

        Raises:
            RequestError: If the request was already sent
            RequestCancelledError: If the call was cancelled or hit its deadline
            TransportError: If the HTTP request fails
            APIError: If the response status is outside 200-299
            DecodeError: If the body is not valid JSON for the target
        """
        if target is not None and not hasattr(target, "write") and not callable(target):
            raise TypeError("target must be a writable sink, a decoder callable or None")

        with self._dispatch_lock:
            if request in self._dispatched:
                raise RequestError("request has already been sent")
            self._dispatched.add(request)

        if cancel is not None and cancel.is_set():
            raise RequestCancelledError("request cancelled")

        try:
            prepared = self.session.prepare_request(request)
        except (requests.RequestException, ValueError) as e:
            raise RequestError(f"invalid request: {e}") from e

        log_url = _without_query(prepared.url)
        try:
            response = self.session.send(
                prepared,
                stream=True,
                timeout=timeout if timeout is not None else self.config.timeout
            )
        except requests.Timeout as e:
            logger.warning("%s %s aborted: deadline exceeded", prepared.method, log_url)
            raise RequestCancelledError("deadline exceeded") from e
        except requests.RequestException as e:
            if cancel is not None and cancel.is_set():
                logger.warning("%s %s aborted: request cancelled", prepared.method, log_url)
                raise RequestCancelledError("request cancelled") from e
            logger.warning("%s %s failed: %s", prepared.method, log_url, e)
            raise TransportError(f"HTTP request failed: {e}") from e

        try:
            logger.debug("%s %s -> %s", prepared.method, log_url, response.status_code)

            if cancel is not None and cancel.is_set():
                logger.warning("%s %s aborted: request cancelled", prepared.method, log_url)
                raise RequestCancelledError("request cancelled")

            if not 200 <= response.status_code <= 299:
                body = self._read_content(response, cancel)
                raise APIError(body.decode(response.encoding or "utf-8", errors="replace"),
                               response.status_code)

            return self._handle_body(response, target, cancel)
        finally:
            response.close()

    def _iter_body(self, response: requests.Response, cancel: Optional[threading.Event]):
        """Yield body chunks, mapping read failures to the client's errors."""
        try:
            for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                if cancel is not None and cancel.is_set():
                    raise RequestCancelledError("request cancelled")
                yield chunk
        except requests.RequestException as e:
            if cancel is not None and cancel.is_set():
                raise RequestCancelledError("request cancelled") from e
            # requests wraps a read timeout during iter_content in ConnectionError
            if isinstance(e, requests.Timeout) or \
                    any(isinstance(arg, ReadTimeoutError) for arg in e.args):
                logger.warning("%s aborted while reading body: deadline exceeded",
                               _without_query(response.url or ""))
                raise RequestCancelledError("deadline exceeded") from e
            raise TransportError(f"reading response body failed: {e}") from e

    def _read_content(self, response: requests.Response,
                      cancel: Optional[threading.Event] = None) -> bytes:
        return b"".join(self._iter_body(response, cancel))

    def _handle_body(self, response: requests.Response, target: Any,
                     cancel: Optional[threading.Event] = None) -> Any:
        if target is not None and hasattr(target, "write"):
            written = 0
            for chunk in self._iter_body(response, cancel):
                target.write(chunk)
                written += len(chunk)
            return written

        body = self._read_content(response, cancel)
        if target is None or not body.strip():
            return None

        try:
            data = json.loads(body)
        except ValueError as e:
            raise DecodeError(f"malformed JSON response: {e}") from e
        return target(data)

    def _get(self, path: str, target: Any, params: Optional[Mapping[str, Any]] = None,
             timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> Any:
        request = self.sign_request(self.new_request("GET", path, params=params))
        return self.do(request, target, timeout=timeout, cancel=cancel)

    def infographics(self, timeout: Optional[float] = None,
                     cancel: Optional[threading.Event] = None) -> List[Infographic]:
        """Fetch the list of infographics."""
        result = self._get(self._path("infographics"), list_of(Infographic),
                           timeout=timeout, cancel=cancel)
        return result if result is not None else []

    def infographic(self, infographic_id: Union[int, str], timeout: Optional[float] = None,
                    cancel: Optional[threading.Event] = None) -> Infographic:
        """Fetch a single infographic by its identification number."""
        result = self._get(self._path("infographics", infographic_id), Infographic.from_dict,
                           timeout=timeout, cancel=cancel)
        return result if result is not None else Infographic()

    def user_infographics(self, user_id: Union[int, str], timeout: Optional[float] = None,
                          cancel: Optional[threading.Event] = None) -> List[Infographic]:
        """Fetch the infographics owned by a user."""
        result = self._get(self._path("users", user_id, "infographics"), list_of(Infographic),
                           timeout=timeout, cancel=cancel)
        return result if result is not None else []

    def themes(self, timeout: Optional[float] = None,
               cancel: Optional[threading.Event] = None) -> List[Theme]:
        """Fetch the themes available to infographics."""
        result = self._get(self._path("themes"), list_of(Theme), timeout=timeout, cancel=cancel)
        return result if result is not None else []

    def export_infographic(self, infographic_id: Union[int, str], fmt: str, sink,
                           timeout: Optional[float] = None,
                           cancel: Optional[threading.Event] = None) -> int:
        """
        Download a rendered infographic into a binary sink.

        Args:
            infographic_id: Infographic identification number
            fmt: One of "pdf", "png" or "html"
            sink: Object with a ``write(bytes)`` method

        Returns:
            Number of bytes written
        """
        fmt = (fmt or "").lower()
        if fmt not in EXPORT_FORMATS:
            raise RequestError(f"format must be one of {EXPORT_FORMATS}, got {fmt!r}")
        if not hasattr(sink, "write"):
            raise RequestError("sink must have a write method")

        return self._get(self._path("infographics", infographic_id), sink,
                         params={"format": fmt}, timeout=timeout, cancel=cancel)

    def close(self):
        """Close the HTTP session if the client created it."""
        if self.session and self._owns_session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
