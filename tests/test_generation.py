"""Generation-config builder tests: per-model policy and envelope shape."""

from __future__ import annotations

from typing import Any

import pytest

from gemchat.constants import DEEP_SEARCH_SYSTEM_PROMPT
from gemchat.errors import ConfigurationError
from gemchat.generation import (
    FeatureFlags,
    GenerationConfig,
    ModelOptions,
    SamplingParams,
    ThinkingConfig,
    build_config,
    build_request_envelope,
)

pytestmark = pytest.mark.unit

CONTENTS = [{"role": "user", "parts": [{"text": "hi"}]}]
STRUCTURED = {
    "response_mime_type": "application/json",
    "response_schema": {"type": "object"},
}
PROMOTED_KEYS = ("safetySettings", "systemInstruction", "tools", "toolConfig")


def _body(model_id: str, **kwargs: Any) -> dict[str, Any]:
    defaults: dict[str, Any] = {
        "system_instruction": None,
        "sampling": None,
        "show_thoughts": True,
        "thinking_budget": 0,
    }
    defaults.update(kwargs)
    config = build_config(model_id, **defaults)
    return build_request_envelope(CONTENTS, config)


# =============================================================================
# Policy table
# =============================================================================


@pytest.mark.parametrize(
    "model_id", ["gemini-2.5-flash-image-preview", "gemini-2.5-flash-image"]
)
def test_image_only_models_ignore_everything_else(model_id: str) -> None:
    body = _body(
        model_id,
        system_instruction="be brief",
        sampling={"temperature": 0.3, **STRUCTURED},
        thinking_budget=1024,
        features={"google_search": True},
        options={"aspect_ratio": "16:9", "image_size": "2K"},
    )

    assert body == {
        "contents": CONTENTS,
        "generationConfig": {
            "responseModalities": ["IMAGE", "TEXT"],
            "imageConfig": {"aspectRatio": "16:9"},
        },
    }


def test_pro_image_model_gets_size_search_and_instruction() -> None:
    body = _body(
        "gemini-3-pro-image-preview",
        system_instruction="draw cats",
        sampling={"temperature": 0.3},
        features={"google_search": True},
    )

    assert body["generationConfig"] == {
        "responseModalities": ["IMAGE", "TEXT"],
        "imageConfig": {"aspectRatio": "1:1", "imageSize": "1K"},
    }
    assert body["tools"] == [{"googleSearch": {}}]
    assert body["systemInstruction"] == {"parts": [{"text": "draw cats"}]}


def test_pro_image_model_without_search_or_instruction() -> None:
    body = _body("gemini-3-pro-image-preview", system_instruction="")

    assert "tools" not in body
    assert "systemInstruction" not in body


@pytest.mark.parametrize(
    "model_id",
    ["gemini-3-pro-preview", "models/gemini-3-flash-preview", "gemini-3-pro-exp"],
)
def test_level_family_without_budget_sends_level(model_id: str) -> None:
    thinking = _body(model_id, thinking_budget=0)["generationConfig"]["thinkingConfig"]

    assert thinking == {"includeThoughts": True, "thinkingLevel": "HIGH"}
    assert "thinkingBudget" not in thinking


def test_level_family_with_budget_sends_budget_only() -> None:
    thinking = _body("gemini-3-pro-preview", thinking_budget=50)["generationConfig"][
        "thinkingConfig"
    ]

    assert thinking == {"includeThoughts": True, "thinkingBudget": 50}
    assert "thinkingLevel" not in thinking


def test_level_family_honours_requested_level() -> None:
    thinking = _body(
        "gemini-3-pro-preview", show_thoughts=False, options={"thinking_level": "low"}
    )["generationConfig"]["thinkingConfig"]

    assert thinking == {"includeThoughts": False, "thinkingLevel": "LOW"}


@pytest.mark.parametrize(
    ("model_id", "budget"),
    [
        ("gemini-2.5-pro", 0),
        ("models/gemini-flash-latest", 2048),
        ("models/gemini-flash-lite-latest", -1),
        ("gemini-2.5-flash", 128),
    ],
)
def test_budget_family_always_sends_budget(model_id: str, budget: int) -> None:
    thinking = _body(model_id, thinking_budget=budget)["generationConfig"][
        "thinkingConfig"
    ]

    assert thinking == {"includeThoughts": True, "thinkingBudget": budget}


def test_other_models_get_no_thinking_config() -> None:
    body = _body("gemini-2.0-flash", thinking_budget=512, sampling={"top_k": 40})

    assert body["generationConfig"] == {"topK": 40}


# =============================================================================
# Tools and structured output
# =============================================================================


def test_structured_output_is_kept_without_tools() -> None:
    generation = _body("gemini-2.0-flash", sampling=STRUCTURED)["generationConfig"]

    assert generation["responseMimeType"] == "application/json"
    assert generation["responseSchema"] == {"type": "object"}


@pytest.mark.parametrize("flag", ["google_search", "code_execution", "url_context"])
def test_any_tool_strips_structured_output(flag: str) -> None:
    body = _body("gemini-2.0-flash", sampling=STRUCTURED, features={flag: True})

    assert "responseMimeType" not in body["generationConfig"]
    assert "responseSchema" not in body["generationConfig"]
    assert len(body["tools"]) == 1


def test_tools_are_emitted_in_a_stable_order() -> None:
    body = _body(
        "gemini-2.0-flash",
        features={"url_context": True, "code_execution": True, "google_search": True},
    )

    assert body["tools"] == [
        {"googleSearch": {}},
        {"codeExecution": {}},
        {"urlContext": {}},
    ]


def test_deep_search_forces_search_and_extends_instruction() -> None:
    body = _body(
        "gemini-2.0-flash",
        system_instruction="be brief",
        features={"deep_search": True},
    )

    assert body["tools"] == [{"googleSearch": {}}]
    text = body["systemInstruction"]["parts"][0]["text"]
    assert text == f"be brief\n\n{DEEP_SEARCH_SYSTEM_PROMPT}"


def test_deep_search_without_instruction_uses_suffix_alone() -> None:
    body = _body("gemini-2.0-flash", features=FeatureFlags(deep_search=True))

    assert body["systemInstruction"]["parts"][0]["text"] == DEEP_SEARCH_SYSTEM_PROMPT


@pytest.mark.parametrize("instruction", [None, ""])
def test_empty_system_instruction_is_omitted(instruction: str | None) -> None:
    body = _body("gemini-2.0-flash", system_instruction=instruction)

    assert "systemInstruction" not in body


# =============================================================================
# Envelope
# =============================================================================


def test_promoted_fields_live_only_at_top_level() -> None:
    config = GenerationConfig(
        temperature=0.5,
        system_instruction="sys",
        safety_settings=(
            {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
        ),
        tools=({"googleSearch": {}},),
        tool_config={"functionCallingConfig": {"mode": "AUTO"}},
    )

    body = build_request_envelope(CONTENTS, config)

    assert body["generationConfig"] == {"temperature": 0.5}
    for key in PROMOTED_KEYS:
        assert key in body
        assert key not in body["generationConfig"]
    assert body["toolConfig"] == {"functionCallingConfig": {"mode": "AUTO"}}


def test_safety_settings_pass_through_from_options() -> None:
    safety = [{"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_ONLY_HIGH"}]

    body = _body("gemini-2.0-flash", options={"safety_settings": safety})

    assert body["safetySettings"] == safety


def test_empty_safety_settings_are_omitted() -> None:
    body = _body("gemini-2.0-flash", options={"safety_settings": []})

    assert "safetySettings" not in body


def test_envelope_does_not_alias_inputs() -> None:
    history = [{"role": "user", "parts": [{"text": "hi"}]}]
    body = build_request_envelope(history, GenerationConfig())

    body["contents"][0]["parts"].append({"text": "extra"})

    assert history == [{"role": "user", "parts": [{"text": "hi"}]}]


def test_config_is_immutable() -> None:
    config = build_config("gemini-2.0-flash", None, None, False, 0)

    with pytest.raises(AttributeError):
        config.temperature = 1.0  # type: ignore[misc]


# =============================================================================
# Input validation
# =============================================================================


def test_sampling_accepts_camel_case_aliases() -> None:
    params = SamplingParams.model_validate({"topP": 0.9, "maxOutputTokens": 64})

    assert params.top_p == 0.9
    assert params.max_output_tokens == 64


@pytest.mark.parametrize(
    "sampling",
    [{"temperature": 3}, {"top_p": -0.1}, {"top_k": 0}, {"unknown": 1}],
)
def test_invalid_sampling_raises_configuration_error(sampling: dict[str, Any]) -> None:
    with pytest.raises(ConfigurationError):
        build_config("gemini-2.0-flash", None, sampling, False, 0)


def test_non_mapping_input_raises_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="must be a SamplingParams"):
        build_config(
            "gemini-2.0-flash",
            None,
            [("temperature", 1)],  # type: ignore[arg-type]
            False,
            0,
        )


@pytest.mark.parametrize("budget", [-2, 1.5, True, "100"])
def test_invalid_thinking_budget_raises(budget: Any) -> None:
    with pytest.raises(ConfigurationError):
        build_config("gemini-2.5-pro", None, None, True, budget)


def test_invalid_thinking_level_raises() -> None:
    with pytest.raises(ConfigurationError):
        build_config(
            "gemini-3-pro-preview",
            None,
            None,
            True,
            0,
            options={"thinking_level": "max"},
        )


def test_model_options_normalize_blank_level() -> None:
    assert ModelOptions(thinking_level="  ").thinking_level is None


def test_thinking_config_rejects_budget_and_level_together() -> None:
    with pytest.raises(ConfigurationError):
        ThinkingConfig(include_thoughts=True, thinking_budget=10, thinking_level="HIGH")
