"""Error classification helpers.

Raw httpx and SDK exceptions never leave the core: they are mapped here into
:class:`NetworkError`, :class:`APIError` or, for a URL httpx cannot
parse, :class:`ConfigurationError`, each with a stable message and, where
one is useful, an actionable hint.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from gemchat._http import FORBIDDEN_STATUS, NOT_FOUND_STATUS, RATE_LIMIT_STATUS
from gemchat.errors import (
    APIError,
    ConfigurationError,
    NetworkError,
    RateLimitError,
    _walk_exception_chain,
)

if TYPE_CHECKING:
    from gemchat.endpoint import Endpoint

PROXY_FAILURE_MESSAGE = (
    "Network Error: Could not connect. Check Proxy URL and CORS settings."
)

# Lower-cased fragments of transport errors that usually mean an unreachable
# or misconfigured proxy rather than a flaky network.
_PROXY_FAILURE_SIGNATURES = (
    "failed to fetch",
    "fetch failed",
    "all connection attempts failed",
    "connection refused",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "certificate verify failed",
)


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status", "code"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def extract_error_message(body: str) -> str | None:
    """Return ``error.message`` from a Google-style JSON error body."""
    try:
        parsed: Any = json.loads(body)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    error = parsed.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return None


def _status_hint(status_code: int | None, cause_message: str) -> str | None:
    cause_lower = cause_message.lower()
    if status_code in {401, FORBIDDEN_STATUS} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        return "Check the API key (set GEMINI_API_KEY or pass api_keys=...)."
    if status_code == NOT_FOUND_STATUS:
        return "Check the model id and, if you use a proxy, the proxy URL."
    if status_code == RATE_LIMIT_STATUS:
        return "Quota exhausted for this key; add more keys or wait before retrying."
    return None


def api_error_from_response(
    status_code: int, body: str, reason: str = ""
) -> APIError:
    """Map a non-2xx response to :class:`APIError`.

    Prefers the provider's ``error.message``; otherwise falls back to
    ``"API Error {status}: {body or reason}"``.
    """
    message = extract_error_message(body) or (
        f"API Error {status_code}: {body or reason}"
    )
    err_cls: type[APIError] = APIError
    if status_code == RATE_LIMIT_STATUS:
        err_cls = RateLimitError
    return err_cls(
        message,
        hint=_status_hint(status_code, message),
        status_code=status_code,
        body=body or None,
    )


def is_proxy_failure(exc: BaseException) -> bool:
    """Whether *exc* matches a known connect-failure signature."""
    for e in _walk_exception_chain(exc):
        text = str(e).lower()
        if any(sig in text for sig in _PROXY_FAILURE_SIGNATURES):
            return True
    return False


def network_error(exc: BaseException, endpoint: Endpoint) -> NetworkError:
    """Map a transport-level failure to :class:`NetworkError`."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    detail = (str(exc) or "").strip() or type(exc).__name__
    if is_proxy_failure(exc):
        hint = (
            "The endpoint could not be reached. Verify the proxy URL and that "
            "the proxy allows cross-origin requests."
            if not endpoint.is_default
            else "Check your network connection."
        )
        return NetworkError(f"{PROXY_FAILURE_MESSAGE} ({detail})", hint=hint)
    return NetworkError(
        f"Network error while contacting {endpoint.url}: {detail}",
        hint=None if endpoint.is_default else "Check the proxy URL.",
    )


def invalid_url_error(detail: BaseException | str, url: str) -> ConfigurationError:
    """Report a base URL that cannot be turned into a request."""
    return ConfigurationError(
        f"Invalid base URL {url!r}: {detail}",
        hint="Use a full http(s) URL, e.g. http://localhost:8080/v1beta.",
    )


def wrap_sdk_error(exc: BaseException, *, message: str) -> APIError:
    """Map a google-genai SDK exception into :class:`APIError`."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, APIError):
        return exc

    status_code = extract_status_code(exc)
    cause = str(exc)
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    err_cls: type[APIError] = APIError
    if status_code == RATE_LIMIT_STATUS:
        err_cls = RateLimitError
    return err_cls(
        f"{message}{status_note}: {cause}" if cause else f"{message}{status_note}",
        hint=_status_hint(status_code, cause),
        status_code=status_code,
    )
