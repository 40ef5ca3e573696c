"""Incremental Server-Sent-Events decoding.

Only ``data:`` lines carry payload; every payload is one complete JSON
object. Bytes may be split anywhere, including inside a multi-byte UTF-8
sequence, so decoding and line buffering are both incremental.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from gemchat.errors import MalformedEventError

log = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
# Emitted by some OpenAI-compatible proxies; not part of the Gemini stream.
_DONE_SENTINEL = "[DONE]"


def parse_event_line(line: str) -> dict[str, Any] | None:
    """Decode one SSE line.

    Returns ``None`` for lines that carry no payload (comments, ``event:``
    fields, blank ``data:`` lines). Raises :class:`MalformedEventError` when a
    ``data:`` payload is not a JSON object.
    """
    trimmed = line.strip()
    if not trimmed.startswith(_DATA_PREFIX):
        return None
    payload = trimmed[len(_DATA_PREFIX) :].strip()
    if not payload or payload == _DONE_SENTINEL:
        return None
    try:
        event = json.loads(payload)
    except ValueError as e:
        raise MalformedEventError(
            f"Invalid JSON in stream event: {e}", raw=payload
        ) from e
    if not isinstance(event, dict):
        raise MalformedEventError(
            f"Stream event is a JSON {type(event).__name__}, expected an object",
            raw=payload,
        )
    return event


class SSEDecoder:
    """Turn a byte stream into decoded JSON envelopes.

    Feed raw chunks with :meth:`feed`; call :meth:`flush` once the connection
    closes to pick up a final line that lacked a newline.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        """Consume *chunk* and return the envelopes completed by it."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        # The last piece may be an incomplete line.
        self._buffer = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> list[dict[str, Any]]:
        """Decode whatever is left in the buffer."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._decode_lines([tail])

    def _decode_lines(self, lines: list[str]) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        for line in lines:
            try:
                event = parse_event_line(line)
            except MalformedEventError as e:
                self.skipped += 1
                log.warning("Skipping malformed stream event: %s (%.80s)", e, e.raw)
                continue
            if event is not None:
                events.append(event)
        return events
