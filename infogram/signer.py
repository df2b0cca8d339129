"""
Request signing for the Infogram REST API.

Every request carries two extra parameters: ``api_key`` and ``api_sig``.
The signature is an HMAC-SHA1 over the canonical string::

    METHOD&urlencode(URL)&urlencode(key1=value1&key2=value2...)

where the parameter pairs are sorted by key and each key and value is
form-encoded before joining. See
https://developers.infogr.am/rest/request-signing.html
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping
from urllib.parse import parse_qsl, quote_plus, urlsplit, urlunsplit

import requests

from .constants import BODY_METHODS, PARAM_API_KEY, PARAM_API_SIG, QUERY_METHODS
from .exceptions import ConfigurationError, RequestError

logger = logging.getLogger(__name__)

SIGNATURE_ENCODINGS = ("base64", "hex")


@dataclass(frozen=True)
class SigningPolicy:
    """
    How the signature is encoded and which part of the URL is signed.

    Attributes:
        encoding: "base64" or "hex" encoding of the HMAC digest
        include_host: sign scheme://host/path when True, the bare path otherwise
    """

    encoding: str = "base64"
    include_host: bool = True

    def __post_init__(self):
        if self.encoding not in SIGNATURE_ENCODINGS:
            raise ConfigurationError(
                f"signature encoding must be one of {SIGNATURE_ENCODINGS}, got {self.encoding!r}"
            )


# Canonical policy used by the client unless configured otherwise
DEFAULT_POLICY = SigningPolicy()
# Hex digest over the request path only
PATH_HEX_POLICY = SigningPolicy(encoding="hex", include_host=False)


def _params_from_pairs(pairs) -> Dict[str, str]:
    params = {}
    for key, value in pairs:
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            raise RequestError(f"parameter {key} must have a single value")
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        params[str(key)] = str(value)
    return params


def _pairs(source: Any):
    if not source:
        return []
    if isinstance(source, bytes):
        source = source.decode("utf-8")
    if isinstance(source, str):
        return parse_qsl(source, keep_blank_values=True)
    if isinstance(source, Mapping):
        return list(source.items())
    return list(source)


def params_in_query(request: requests.Request) -> bool:
    """
    Whether the parameter set of a request lives in its query string.

    True for GET/DELETE, and for write-style methods carrying a JSON body
    instead of form data, since a JSON body cannot hold form parameters.
    """
    method = (request.method or "").upper()
    if method in QUERY_METHODS:
        return True
    if method in BODY_METHODS:
        return getattr(request, "json", None) is not None and not request.data
    raise RequestError(f"unsupported HTTP method: {request.method!r}")


def collect_params(request: requests.Request) -> Dict[str, str]:
    """
    Extract the parameter set of a request.

    GET/DELETE and JSON-bodied requests read the URL query merged with
    ``request.params``; other write-style requests read the form body in
    ``request.data``. A stale ``api_sig`` is dropped so it never feeds into
    its own signature.
    """
    if params_in_query(request):
        params = _params_from_pairs(_pairs(urlsplit(request.url).query))
        params.update(_params_from_pairs(_pairs(request.params)))
    else:
        params = _params_from_pairs(_pairs(request.data))

    params.pop(PARAM_API_SIG, None)
    return params


def serialize_params(params: Mapping[str, str]) -> str:
    """Form-encode params as key=value pairs, sorted by key and joined by '&'."""
    return "&".join(
        f"{quote_plus(key)}={quote_plus(params[key])}" for key in sorted(params)
    )


def signing_url(url: str, policy: SigningPolicy = DEFAULT_POLICY) -> str:
    """Return the portion of ``url`` covered by the signature (never the query)."""
    parts = urlsplit(url)
    if policy.include_host:
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return parts.path or "/"


def canonical_string(method: str, url: str, params: Mapping[str, str],
                     policy: SigningPolicy = DEFAULT_POLICY) -> str:
    """
    Build the canonical string the signature is computed over.

    Args:
        method: HTTP method
        url: Request URL; any query string is ignored
        params: Parameter set, including ``api_key`` but not ``api_sig``
        policy: Signing policy

    Returns:
        METHOD&urlencode(URL)&urlencode(sorted params)
    """
    return "&".join((
        method.upper(),
        quote_plus(signing_url(url, policy)),
        quote_plus(serialize_params(params)),
    ))


def compute_signature(canonical: str, api_secret: str,
                      policy: SigningPolicy = DEFAULT_POLICY) -> str:
    """HMAC-SHA1 of ``canonical`` keyed with ``api_secret``, encoded per policy."""
    digest = hmac.new(
        api_secret.encode("utf-8"),
        canonical.encode("utf-8"),
        hashlib.sha1
    ).digest()

    if policy.encoding == "hex":
        return digest.hex()
    return base64.b64encode(digest).decode("ascii")


def sign_request(request: requests.Request, api_key: str, api_secret: str,
                 policy: SigningPolicy = DEFAULT_POLICY) -> requests.Request:
    """
    Add ``api_key`` and ``api_sig`` to a request in place.

    The signed parameter set is written back where it was read from: the
    query parameters for GET/DELETE and JSON bodies (the URL keeps no query
    string of its own), the form body otherwise.

    Returns:
        The same request, for chaining

    Raises:
        RequestError: If the method is unsupported or a parameter is multi-valued
    """
    method = (request.method or "").upper()
    params = collect_params(request)
    params[PARAM_API_KEY] = api_key

    canonical = canonical_string(method, request.url, params, policy)
    params[PARAM_API_SIG] = compute_signature(canonical, api_secret, policy)

    if params_in_query(request):
        parts = urlsplit(request.url)
        request.url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", parts.fragment))
        request.params = params
    else:
        request.data = params

    logger.debug("Signed %s %s with %d parameters", method, signing_url(request.url), len(params))
    return request
