"""Domain types shared by the orchestrator and its callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, TypedDict

Part = dict[str, Any]


class ChatHistoryItem(TypedDict):
    """One conversation turn in wire shape."""

    role: Literal["user", "model"] | str
    parts: list[Part]


@dataclass(frozen=True)
class ThoughtPart:
    """Reasoning text the model flagged as internal."""

    text: str
    kind: Literal["thought"] = "thought"


@dataclass(frozen=True)
class ContentPart:
    """User-facing output: text, inline media, code, etc. Kept in wire shape."""

    part: Part
    kind: Literal["content"] = "content"


ResponsePart = ThoughtPart | ContentPart


def classify_part(part: Part) -> ResponsePart:
    """Tag a raw response part as thought or content.

    Classification is per part: one response may interleave both kinds.
    """
    if part.get("thought"):
        text = part.get("text")
        return ThoughtPart(text=text if isinstance(text, str) else "")
    return ContentPart(part=part)


@dataclass(frozen=True)
class ResponseMetadata:
    """Usage, grounding and URL-context metadata of a response.

    Each field stays ``None`` until a response carries it. While streaming,
    later envelopes replace earlier values. "No metadata" is an instance
    with every field ``None`` (see :attr:`is_empty`), not ``None`` itself.
    """

    usage: dict[str, Any] | None = None
    grounding: dict[str, Any] | None = None
    url_context: dict[str, Any] | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.usage is None and self.grounding is None and self.url_context is None
        )

    def merge_envelope(self, envelope: dict[str, Any]) -> ResponseMetadata:
        """Return metadata updated with whatever *envelope* carries."""
        usage = envelope.get("usageMetadata") or self.usage
        candidate = first_candidate(envelope)
        grounding = self.grounding
        url_context = self.url_context
        if candidate is not None:
            grounding = candidate.get("groundingMetadata") or grounding
            url_context = (
                candidate.get("urlContextMetadata")
                or candidate.get("url_context_metadata")
                or url_context
            )
        return ResponseMetadata(
            usage=usage, grounding=grounding, url_context=url_context
        )


def first_candidate(envelope: dict[str, Any]) -> dict[str, Any] | None:
    candidates = envelope.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def candidate_parts(envelope: dict[str, Any]) -> list[Part] | None:
    """Parts of the first candidate.

    ``None`` means the candidate carries no ``parts`` list at all; an empty
    list is returned as is.
    """
    candidate = first_candidate(envelope)
    if candidate is None:
        return None
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list):
        return None
    return [p for p in parts if isinstance(p, dict)]


@dataclass(frozen=True)
class ModelOption:
    """A selectable model as returned by the listing endpoint."""

    id: str
    name: str
    is_pinned: bool = False

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> ModelOption:
        model_id = str(raw["name"])
        display = raw.get("displayName")
        name = display if isinstance(display, str) and display else None
        return cls(id=model_id, name=name or model_id.rsplit("/", 1)[-1] or model_id)


@dataclass(frozen=True)
class ConnectionCheck:
    """Outcome of :func:`gemchat.catalog.test_connection`."""

    success: bool
    message: str
    model_count: int = 0
