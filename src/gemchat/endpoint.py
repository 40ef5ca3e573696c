"""Endpoint normalization and request URL composition.

Users paste proxy URLs in every shape imaginable (``host/``, ``host/v1beta``,
``host/v1/``). Everything downstream works with a single normalized
:class:`Endpoint` so the API version is appended exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from urllib.parse import quote

import httpx

from gemchat._errors import invalid_url_error
from gemchat._http import (
    API_VERSION,
    DEFAULT_ENDPOINT,
    JSON_CONTENT_TYPE,
    PLAIN_CONTENT_TYPE,
)

_VERSION_SUFFIX_RE = re.compile(r"/v1(?:beta)?/?$")
_KEY_PARAM_RE = re.compile(r"([?&]key=)[^&#]*")
_NAMESPACED_MODEL_PREFIXES = ("models/", "tunedModels/")


def normalize_base_url(url: str | None) -> str:
    """Return the canonical base URL for *url*.

    Trims whitespace, drops trailing slashes and a trailing ``/v1beta`` or
    ``/v1`` segment. Empty input maps to the production endpoint. Stripping
    repeats until nothing changes, so the result is a fixed point.
    """
    clean = (url or "").strip()
    while True:
        previous = clean
        clean = _VERSION_SUFFIX_RE.sub("", clean.strip().rstrip("/"))
        if clean == previous:
            break
    return clean or DEFAULT_ENDPOINT


def validate_base_url(url: str) -> str:
    """Return *url* if httpx can send requests to it.

    Raises:
        ConfigurationError: For a malformed URL, a non-http(s) scheme, a
            missing host or a port outside 1-65535.
    """
    try:
        parsed = httpx.URL(url)
        port = parsed.port
    except httpx.InvalidURL as e:
        raise invalid_url_error(e, url) from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise invalid_url_error("expected an absolute http(s) URL", url)
    if port is not None and not 0 < port <= 65535:
        raise invalid_url_error(f"port {port} is out of range", url)
    return url


@dataclass(frozen=True)
class Endpoint:
    """A normalized API base URL (no trailing slash, no version suffix)."""

    url: str = DEFAULT_ENDPOINT

    def __post_init__(self) -> None:
        """Normalize and validate on construction so every instance is usable."""
        url = validate_base_url(normalize_base_url(self.url))
        object.__setattr__(self, "url", url)

    @classmethod
    def from_url(cls, url: str | Endpoint | None) -> Endpoint:
        """Build an endpoint from raw user input or pass an endpoint through."""
        if isinstance(url, Endpoint):
            return url
        return cls(url or DEFAULT_ENDPOINT)

    @property
    def is_default(self) -> bool:
        """Whether this is the production endpoint rather than a custom proxy."""
        return self.url == DEFAULT_ENDPOINT

    @property
    def api_root(self) -> str:
        return f"{self.url}/{API_VERSION}"

    def __str__(self) -> str:
        return self.url


def model_path(model_id: str) -> str:
    """Return ``models/<id>`` unless *model_id* is already namespaced."""
    if model_id.startswith(_NAMESPACED_MODEL_PREFIXES):
        return model_id
    return f"models/{model_id}"


def build_url(
    endpoint: Endpoint | str | None,
    model_id: str,
    method: str,
    api_key: str,
    *,
    stream: bool = False,
) -> str:
    """Compose ``{endpoint}/v1beta/{modelPath}:{method}?key={apiKey}``.

    Streaming requests additionally ask for Server-Sent Events via
    ``&alt=sse``.
    """
    root = Endpoint.from_url(endpoint).api_root
    url = f"{root}/{model_path(model_id)}:{method}?key={quote(api_key, safe='')}"
    if stream:
        url += "&alt=sse"
    return url


def models_url(
    endpoint: Endpoint | str | None, api_key: str, *, page_token: str | None = None
) -> str:
    """URL for the model listing endpoint."""
    root = Endpoint.from_url(endpoint).api_root
    url = f"{root}/models?key={quote(api_key, safe='')}"
    if page_token:
        url += f"&pageToken={quote(page_token, safe='')}"
    return url


def request_headers(endpoint: Endpoint | str | None) -> dict[str, str]:
    """Pick the request content type for *endpoint*.

    Custom proxies frequently lack CORS preflight support, so requests to
    them use ``text/plain`` (a "simple" request). The production endpoint
    gets the accurate ``application/json``.
    """
    if Endpoint.from_url(endpoint).is_default:
        return {"Content-Type": JSON_CONTENT_TYPE}
    return {"Content-Type": PLAIN_CONTENT_TYPE}


def redact_url(url: str) -> str:
    """Mask the ``key`` query parameter so URLs are safe to log."""
    return _KEY_PARAM_RE.sub(r"\1[REDACTED]", url)
