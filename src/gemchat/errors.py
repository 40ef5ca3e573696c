"""Exception hierarchy for gemchat."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class GemchatError(Exception):
    """Base exception for all gemchat errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(GemchatError):
    """Credentials or settings are missing or invalid."""


class NetworkError(GemchatError):
    """The request never produced an HTTP response (connect, DNS, timeout, CORS)."""


class APIError(GemchatError):
    """The API answered with a non-2xx status or an unusable body."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.body = body


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class CancellationError(GemchatError):
    """The caller cancelled the operation.

    Orchestrated calls route this to the completion callback instead of the
    error callback.
    """

    name = "AbortError"

    def __init__(
        self, message: str = "Request cancelled by user.", *, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)


AbortError = CancellationError


class MalformedEventError(GemchatError):
    """A single stream event could not be decoded. Logged and skipped."""

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
