"""Generation-config builder.

Two stages, both pure:

1. :func:`build_config` turns a model id plus raw user settings into an
   immutable :class:`GenerationConfig`, applying per-model quirks.
2. :func:`build_request_envelope` derives the wire payload, promoting
   ``safetySettings``, ``systemInstruction``, ``tools`` and ``toolConfig`` to
   the top level by explicit extraction.
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from gemchat.constants import (
    CODE_EXECUTION_TOOL,
    DEEP_SEARCH_SYSTEM_PROMPT,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_THINKING_LEVEL,
    GOOGLE_SEARCH_TOOL,
    IMAGE_ONLY_MODELS,
    PRO_IMAGE_MODEL,
    THINKING_BUDGET_MODEL_MARKER,
    THINKING_BUDGET_MODELS,
    THINKING_LEVEL_MODEL_MARKER,
    THINKING_LEVEL_MODELS,
    URL_CONTEXT_TOOL,
)
from gemchat.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gemchat.models import ChatHistoryItem

log = logging.getLogger(__name__)

ThinkingLevel = Literal["LOW", "HIGH"]
IMAGE_AND_TEXT: tuple[str, ...] = ("IMAGE", "TEXT")

# --- Caller input (Pydantic wall) ---


class SamplingParams(BaseModel):
    """Sampling and structured-output settings as entered by the user.

    Accepts snake_case names or the API's camelCase spelling.
    """

    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    top_k: int | None = Field(default=None, ge=1)
    max_output_tokens: int | None = Field(default=None, ge=1)
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None

    model_config = {
        "frozen": True,
        "extra": "forbid",
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class FeatureFlags(BaseModel):
    """Tool toggles from the chat settings."""

    google_search: bool = False
    code_execution: bool = False
    url_context: bool = False
    #: Forces search on and extends the system instruction.
    deep_search: bool = False

    model_config = {"frozen": True, "extra": "forbid"}


class SafetySetting(BaseModel):
    """One harm category threshold, passed through verbatim."""

    category: str = Field(min_length=1)
    threshold: str = Field(min_length=1)

    model_config = {"frozen": True, "extra": "forbid"}


class ModelOptions(BaseModel):
    """Model-specific knobs: thinking level, image shape, safety."""

    thinking_level: ThinkingLevel | None = None
    aspect_ratio: str | None = None
    image_size: str | None = None
    safety_settings: list[SafetySetting] | None = None

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("thinking_level", mode="before")
    @classmethod
    def normalize_thinking_level(cls, v: Any) -> Any:
        """Accept ``"low"``/``"high"`` in any case."""
        if isinstance(v, str):
            v = v.strip().upper()
            return v or None
        return v


_InputT = TypeVar("_InputT", bound=BaseModel)


def _validate_input(
    model_cls: type[_InputT], value: _InputT | Mapping[str, Any] | None, what: str
) -> _InputT:
    if value is None:
        return model_cls()
    if isinstance(value, model_cls):
        return value
    if not isinstance(value, Mapping):
        raise ConfigurationError(
            f"{what} must be a {model_cls.__name__} or a mapping, "
            f"got {type(value).__name__}",
        )
    try:
        return model_cls.model_validate(dict(value))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {what}: {e.errors()[0].get('msg', e)}",
            hint=f"Check the fields of {model_cls.__name__}.",
        ) from e


# --- Immutable runtime config ---


@dataclass(frozen=True)
class ThinkingConfig:
    """Reasoning controls. ``thinking_budget`` and ``thinking_level`` never coexist."""

    include_thoughts: bool
    thinking_budget: int | None = None
    thinking_level: ThinkingLevel | None = None

    def __post_init__(self) -> None:
        if self.thinking_budget is not None and self.thinking_level is not None:
            raise ConfigurationError(
                "thinking_budget and thinking_level are mutually exclusive",
            )

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"includeThoughts": self.include_thoughts}
        if self.thinking_budget is not None:
            body["thinkingBudget"] = self.thinking_budget
        if self.thinking_level is not None:
            body["thinkingLevel"] = self.thinking_level
        return body


@dataclass(frozen=True)
class ImageConfig:
    aspect_ratio: str
    image_size: str | None = None

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"aspectRatio": self.aspect_ratio}
        if self.image_size is not None:
            body["imageSize"] = self.image_size
        return body


@dataclass(frozen=True)
class GenerationConfig:
    """Model-shaped generation settings for one call.

    Built fresh per call and never mutated. The promoted fields
    (``system_instruction``, ``safety_settings``, ``tools``, ``tool_config``)
    live here for convenience but are emitted at the envelope's top level.
    """

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int | None = None
    response_mime_type: str | None = None
    response_schema: Mapping[str, Any] | None = None
    response_modalities: tuple[str, ...] | None = None
    image_config: ImageConfig | None = None
    thinking: ThinkingConfig | None = None
    # Promoted to the request envelope.
    system_instruction: str | None = None
    safety_settings: tuple[Mapping[str, str], ...] | None = None
    tools: tuple[Mapping[str, Any], ...] | None = None
    tool_config: Mapping[str, Any] | None = None

    def generation_body(self) -> dict[str, Any]:
        """Return the nested ``generationConfig`` object (no promoted fields)."""
        body: dict[str, Any] = {}
        scalar_fields = (
            ("temperature", self.temperature),
            ("topP", self.top_p),
            ("topK", self.top_k),
            ("maxOutputTokens", self.max_output_tokens),
            ("responseMimeType", self.response_mime_type),
        )
        for key, value in scalar_fields:
            if value is not None:
                body[key] = value
        if self.response_schema is not None:
            body["responseSchema"] = deepcopy(dict(self.response_schema))
        if self.response_modalities is not None:
            body["responseModalities"] = list(self.response_modalities)
        if self.image_config is not None:
            body["imageConfig"] = self.image_config.to_wire()
        if self.thinking is not None:
            body["thinkingConfig"] = self.thinking.to_wire()
        return body


def build_request_envelope(
    contents: Sequence[ChatHistoryItem], config: GenerationConfig
) -> dict[str, Any]:
    """Derive the request body sent to ``generateContent``.

    Each promoted field appears at the top level only when set and never
    inside ``generationConfig``.
    """
    envelope: dict[str, Any] = {
        "contents": [deepcopy(dict(item)) for item in contents],
        "generationConfig": config.generation_body(),
    }
    if config.safety_settings:
        envelope["safetySettings"] = [dict(s) for s in config.safety_settings]
    if config.tools:
        envelope["tools"] = [deepcopy(dict(t)) for t in config.tools]
    if config.tool_config:
        envelope["toolConfig"] = deepcopy(dict(config.tool_config))
    if config.system_instruction:
        envelope["systemInstruction"] = {"parts": [{"text": config.system_instruction}]}
    return envelope


# --- Policy ---


def is_thinking_level_model(model_id: str) -> bool:
    return model_id in THINKING_LEVEL_MODELS or THINKING_LEVEL_MODEL_MARKER in model_id


def is_thinking_budget_model(model_id: str) -> bool:
    return (
        model_id in THINKING_BUDGET_MODELS or THINKING_BUDGET_MODEL_MARKER in model_id
    )


def _thinking_config(
    model_id: str,
    show_thoughts: bool,
    thinking_budget: int,
    thinking_level: ThinkingLevel | None,
) -> ThinkingConfig | None:
    if is_thinking_level_model(model_id):
        # Budget wins when explicitly set; otherwise fall back to a level.
        if thinking_budget > 0:
            return ThinkingConfig(
                include_thoughts=show_thoughts, thinking_budget=thinking_budget
            )
        return ThinkingConfig(
            include_thoughts=show_thoughts,
            thinking_level=thinking_level or DEFAULT_THINKING_LEVEL,  # type: ignore[arg-type]
        )
    if is_thinking_budget_model(model_id):
        return ThinkingConfig(
            include_thoughts=show_thoughts, thinking_budget=thinking_budget
        )
    return None


def _tools(flags: FeatureFlags) -> tuple[dict[str, Any], ...]:
    tools: list[dict[str, Any]] = []
    if flags.google_search or flags.deep_search:
        tools.append({GOOGLE_SEARCH_TOOL: {}})
    if flags.code_execution:
        tools.append({CODE_EXECUTION_TOOL: {}})
    if flags.url_context:
        tools.append({URL_CONTEXT_TOOL: {}})
    return tuple(tools)


def _with_deep_search(system_instruction: str | None, deep_search: bool) -> str | None:
    if not deep_search:
        return system_instruction or None
    if system_instruction:
        return f"{system_instruction}\n\n{DEEP_SEARCH_SYSTEM_PROMPT}"
    return DEEP_SEARCH_SYSTEM_PROMPT


def _check_thinking_budget(thinking_budget: Any) -> int:
    if isinstance(thinking_budget, bool) or not isinstance(thinking_budget, int):
        raise ConfigurationError(
            f"thinking_budget must be an integer, got {type(thinking_budget).__name__}",
        )
    if thinking_budget < -1:
        raise ConfigurationError(
            f"thinking_budget must be >= 0 (or -1 for dynamic), got {thinking_budget}",
            hint="Use 0 to disable thinking on budget-only models.",
        )
    return thinking_budget


def build_config(
    model_id: str,
    system_instruction: str | None,
    sampling: SamplingParams | Mapping[str, Any] | None,
    show_thoughts: bool,
    thinking_budget: int,
    features: FeatureFlags | Mapping[str, Any] | None = None,
    options: ModelOptions | Mapping[str, Any] | None = None,
) -> GenerationConfig:
    """Build the generation config for *model_id*.

    The first matching rule wins:

    - image-only models get image+text modalities and an aspect ratio, nothing else;
    - the pro image model adds image size, optional search and instruction;
    - budget+level thinking models send a budget when > 0, else a level;
    - budget-only thinking models always send the budget;
    - other models get no thinking config.

    Tools are attached afterwards; attaching any tool drops the
    structured-output fields, which the API rejects alongside tools.

    Raises:
        ConfigurationError: When a setting fails validation.
    """
    params = _validate_input(SamplingParams, sampling, "sampling params")
    flags = _validate_input(FeatureFlags, features, "feature flags")
    opts = _validate_input(ModelOptions, options, "model options")
    budget = _check_thinking_budget(thinking_budget)

    if model_id in IMAGE_ONLY_MODELS:
        return GenerationConfig(
            response_modalities=IMAGE_AND_TEXT,
            image_config=ImageConfig(
                aspect_ratio=opts.aspect_ratio or DEFAULT_ASPECT_RATIO
            ),
        )

    if model_id == PRO_IMAGE_MODEL:
        search = flags.google_search or flags.deep_search
        return GenerationConfig(
            response_modalities=IMAGE_AND_TEXT,
            image_config=ImageConfig(
                aspect_ratio=opts.aspect_ratio or DEFAULT_ASPECT_RATIO,
                image_size=opts.image_size or DEFAULT_IMAGE_SIZE,
            ),
            tools=({GOOGLE_SEARCH_TOOL: {}},) if search else None,
            system_instruction=system_instruction or None,
        )

    thinking = _thinking_config(model_id, show_thoughts, budget, opts.thinking_level)
    tools = _tools(flags)
    safety = (
        tuple(s.model_dump() for s in opts.safety_settings)
        if opts.safety_settings
        else None
    )

    config = GenerationConfig(
        temperature=params.temperature,
        top_p=params.top_p,
        top_k=params.top_k,
        max_output_tokens=params.max_output_tokens,
        response_mime_type=None if tools else params.response_mime_type,
        response_schema=None if tools else params.response_schema,
        thinking=thinking,
        system_instruction=_with_deep_search(system_instruction, flags.deep_search),
        safety_settings=safety,
        tools=tools or None,
    )
    log.debug(
        "Built config for %s (thinking=%s, tools=%d)",
        model_id,
        thinking,
        len(tools),
    )
    return config
