"""Streaming decode tests: framing, chunk boundaries and malformed events."""

from __future__ import annotations

import logging

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from gemchat.errors import MalformedEventError
from gemchat.sse import SSEDecoder, parse_event_line

pytestmark = pytest.mark.unit

TWO_EVENTS = b'data: {"a":1}\n\ndata: {"a":2}\n\n'


def _decode(chunks: list[bytes]) -> list[dict]:
    decoder = SSEDecoder()
    events: list[dict] = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.flush())
    return events


def _split(data: bytes, cuts: list[int]) -> list[bytes]:
    points = sorted({0, len(data), *(c % (len(data) + 1) for c in cuts)})
    return [data[a:b] for a, b in zip(points, points[1:], strict=False)]


@given(cuts=st.lists(st.integers(min_value=0, max_value=10_000), max_size=12))
@settings(max_examples=200, deadline=None, derandomize=True)
def test_events_are_independent_of_chunk_boundaries(cuts: list[int]) -> None:
    assert _decode(_split(TWO_EVENTS, cuts)) == [{"a": 1}, {"a": 2}]


def test_byte_by_byte_delivery() -> None:
    chunks = [TWO_EVENTS[i : i + 1] for i in range(len(TWO_EVENTS))]

    assert _decode(chunks) == [{"a": 1}, {"a": 2}]


def test_multibyte_character_split_across_chunks() -> None:
    data = 'data: {"text":"héllo 🌍"}\n'.encode()
    emoji_at = data.index("🌍".encode())

    events = _decode([data[: emoji_at + 2], data[emoji_at + 2 :]])

    assert events == [{"text": "héllo 🌍"}]


def test_malformed_event_is_dropped_and_stream_continues(
    caplog: pytest.LogCaptureFixture,
) -> None:
    data = b'data: {"a":1}\n\ndata: {not json\n\ndata: {"a":2}\n\n'
    decoder = SSEDecoder()

    with caplog.at_level(logging.WARNING, logger="gemchat.sse"):
        events = decoder.feed(data) + decoder.flush()

    assert events == [{"a": 1}, {"a": 2}]
    assert decoder.skipped == 1
    assert "malformed" in caplog.text.lower()


def test_crlf_framing_and_non_data_lines_are_ignored() -> None:
    data = b': keep-alive\r\nevent: message\r\ndata: {"a":1}\r\n\r\nid: 7\r\n'

    assert _decode([data]) == [{"a": 1}]


def test_final_line_without_newline_is_flushed() -> None:
    decoder = SSEDecoder()

    assert decoder.feed(b'data: {"a":1}') == []
    assert decoder.flush() == [{"a": 1}]
    assert decoder.flush() == []


@pytest.mark.parametrize("line", ["", "data:", "data:   ", "data: [DONE]", "event: x"])
def test_parse_event_line_skips_lines_without_payload(line: str) -> None:
    assert parse_event_line(line) is None


@pytest.mark.parametrize("payload", ["[1, 2]", '"text"', "42", "{oops"])
def test_parse_event_line_rejects_non_objects(payload: str) -> None:
    with pytest.raises(MalformedEventError) as exc:
        parse_event_line(f"data: {payload}")
    assert exc.value.raw == payload


def test_parse_event_line_accepts_missing_space_after_colon() -> None:
    assert parse_event_line('data:{"a":1}') == {"a": 1}
