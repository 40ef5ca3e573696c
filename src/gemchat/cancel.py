"""Cooperative cancellation token shared between a caller and the core."""

from __future__ import annotations

from gemchat.errors import CancellationError


class CancelToken:
    """A one-way cancellation flag.

    The core never interrupts work preemptively: it polls the token at call
    entry and at every streaming iteration, then stops consuming.
    """

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Repeated calls keep the first reason."""
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        """Raise :class:`CancellationError` when cancellation was requested."""
        if self._cancelled:
            raise CancellationError(self._reason or "Request cancelled by user.")

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled})"


def raise_if_cancelled(cancel: CancelToken | None) -> None:
    """Check an optional token."""
    if cancel is not None:
        cancel.raise_if_cancelled()
