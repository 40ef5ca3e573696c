"""Chat orchestration: one chat turn end-to-end, streaming or not.

Both entry points report exclusively through callbacks. ``on_error`` fires at
most once and never for a user cancellation. The completion callback fires
exactly once for a streaming call, whatever happens.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from contextlib import aclosing
import logging
from typing import TYPE_CHECKING, Any

from gemchat.cancel import raise_if_cancelled
from gemchat.errors import CancellationError
from gemchat.generation import (
    IMAGE_AND_TEXT,
    GenerationConfig,
    ImageConfig,
    build_request_envelope,
)
from gemchat.models import (
    ChatHistoryItem,
    ContentPart,
    Part,
    ResponseMetadata,
    ThoughtPart,
    candidate_parts,
    classify_part,
)
from gemchat.transport import RequestTarget, Transport

if TYPE_CHECKING:
    from gemchat.cancel import CancelToken
    from gemchat.config import Credentials

log = logging.getLogger(__name__)

STREAM_METHOD = "streamGenerateContent"
GENERATE_METHOD = "generateContent"

PartCallback = Callable[[Part], None]
ThoughtCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]
StreamCompleteCallback = Callable[[ResponseMetadata], None]
CompleteCallback = Callable[[list[Part], str | None, ResponseMetadata], None]

Message = str | Sequence[Part]


def _user_turn(message: Message) -> ChatHistoryItem:
    if isinstance(message, str):
        return {"role": "user", "parts": [{"text": message}]}
    return {"role": "user", "parts": [dict(p) for p in message]}


def build_contents(
    history: Sequence[ChatHistoryItem], message: Message
) -> list[ChatHistoryItem]:
    """Return a new list: *history* followed by exactly one user turn."""
    return [*history, _user_turn(message)]


def partition_parts(response: dict[str, Any]) -> tuple[list[Part], str | None]:
    """Split a complete response into content parts and concatenated thoughts.

    Falls back to a single text part only when the response has no
    ``parts`` list but carries a flat ``text`` field. An empty ``parts``
    list yields no content.
    """
    thoughts = ""
    content: list[Part] = []
    parts = candidate_parts(response)
    if parts is not None:
        for part in parts:
            classified = classify_part(part)
            if isinstance(classified, ThoughtPart):
                thoughts += classified.text
            else:
                content.append(classified.part)
    elif isinstance(response.get("text"), str) and response["text"]:
        content.append({"text": response["text"]})
    return content, thoughts or None


async def _close_transport(transport: Transport) -> None:
    try:
        await transport.aclose()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        # Cleanup should never mask the primary outcome.
        log.warning("Transport cleanup failed: %s", exc)


async def stream_chat(
    credentials: Credentials,
    model_id: str,
    history: Sequence[ChatHistoryItem],
    message: Message,
    config: GenerationConfig,
    cancel: CancelToken | None = None,
    *,
    on_part: PartCallback,
    on_thought_chunk: ThoughtCallback,
    on_error: ErrorCallback,
    on_complete: StreamCompleteCallback,
    transport: Transport | None = None,
) -> None:
    """Stream one chat turn.

    Envelopes are handled strictly in arrival order. Each part of the first
    candidate goes to ``on_thought_chunk`` (thought parts, as text) or
    ``on_part`` (everything else, in wire shape). Usage, grounding and
    URL-context metadata are last-wins and handed to ``on_complete``.

    Args:
        credentials: API key and endpoint for this call.
        model_id: Bare (``gemini-2.5-pro``) or namespaced model id.
        history: Previous turns; not modified.
        message: The new user turn, as text or wire parts.
        config: Output of :func:`gemchat.build_config`.
        cancel: Optional token polled before the request and per chunk.
        on_part: Receives each content part.
        on_thought_chunk: Receives the text of each thought part.
        on_error: Called once on failure; never for a cancellation.
        on_complete: Called exactly once with the last-seen metadata. When no
            envelope carried any (for example, a cancel before the first
            event), it receives an empty :class:`ResponseMetadata` whose
            ``is_empty`` is true, never ``None``.
        transport: Optional shared transport; one is created per call otherwise.
    """
    log.info(
        "Sending stream request for %s (endpoint=%s)", model_id, credentials.endpoint
    )
    metadata = ResponseMetadata()
    active = transport or Transport()
    try:
        payload = build_request_envelope(build_contents(history, message), config)
        target = RequestTarget(
            credentials.endpoint, model_id, STREAM_METHOD, credentials.api_key
        )
        async with aclosing(active.stream(target, payload, cancel)) as envelopes:
            async for envelope in envelopes:
                if cancel is not None and cancel.cancelled:
                    log.warning("Stream aborted by user.")
                    break
                metadata = metadata.merge_envelope(envelope)
                for part in candidate_parts(envelope) or ():
                    classified = classify_part(part)
                    if isinstance(classified, ContentPart):
                        on_part(classified.part)
                    else:
                        on_thought_chunk(classified.text)
    except CancellationError:
        log.warning("Stream aborted by user.")
    except Exception as e:
        log.error("Error in stream request for %s: %s", model_id, e)
        on_error(e)
    finally:
        try:
            on_complete(metadata)
        finally:
            if transport is None:
                await _close_transport(active)


async def send_chat(
    credentials: Credentials,
    model_id: str,
    history: Sequence[ChatHistoryItem],
    message: Message,
    config: GenerationConfig,
    cancel: CancelToken | None = None,
    *,
    on_error: ErrorCallback,
    on_complete: CompleteCallback,
    transport: Transport | None = None,
) -> None:
    """Send one chat turn and deliver the whole response at once.

    ``on_complete(parts, thoughts_text, metadata)`` receives the content
    parts, the concatenated thought text (``None`` when there was none) and
    the response metadata. A cancelled call completes with empty results.
    On failure only ``on_error`` is called.
    """
    log.info(
        "Sending non-stream request for %s (endpoint=%s)",
        model_id,
        credentials.endpoint,
    )
    active = transport or Transport()
    try:
        payload = build_request_envelope(build_contents(history, message), config)
        target = RequestTarget(
            credentials.endpoint, model_id, GENERATE_METHOD, credentials.api_key
        )
        response = await active.request(target, payload, cancel)
    except CancellationError:
        log.warning("Request aborted by user.")
        on_complete([], None, ResponseMetadata())
        return
    except Exception as e:
        log.error("Error in non-stream request for %s: %s", model_id, e)
        on_error(e)
        return
    finally:
        if transport is None:
            await _close_transport(active)

    if cancel is not None and cancel.cancelled:
        on_complete([], None, ResponseMetadata())
        return

    parts, thoughts = partition_parts(response)
    on_complete(parts, thoughts, ResponseMetadata().merge_envelope(response))


async def edit_image(
    credentials: Credentials,
    model_id: str,
    history: Sequence[ChatHistoryItem],
    parts: Sequence[Part],
    cancel: CancelToken | None = None,
    *,
    aspect_ratio: str | None = None,
    transport: Transport | None = None,
) -> list[Part]:
    """Ask an image model to edit or generate images and return its parts.

    Raises:
        CancellationError: When *cancel* is already cancelled.
        GemchatError: Whatever the underlying request failed with.
    """
    raise_if_cancelled(cancel)
    config = GenerationConfig(
        response_modalities=IMAGE_AND_TEXT,
        image_config=ImageConfig(aspect_ratio=aspect_ratio) if aspect_ratio else None,
    )
    errors: list[Exception] = []
    results: list[Part] = []

    def _complete(
        response_parts: list[Part], _thoughts: str | None, _meta: ResponseMetadata
    ) -> None:
        results.extend(response_parts)

    await send_chat(
        credentials,
        model_id,
        history,
        parts,
        config,
        cancel,
        on_error=errors.append,
        on_complete=_complete,
        transport=transport,
    )
    if errors:
        raise errors[0]
    return results
