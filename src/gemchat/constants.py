"""Model tables, prompts and timing constants for gemchat."""

# ==============================================================================
# Model families
# ==============================================================================

# Image-only models that reject every other generation parameter.
IMAGE_ONLY_MODELS = frozenset(
    {
        "gemini-2.5-flash-image-preview",
        "gemini-2.5-flash-image",
    }
)

# Image model that also accepts search grounding and a system instruction.
PRO_IMAGE_MODEL = "gemini-3-pro-image-preview"

# Thinking models taking either a token budget or a thinking level.
THINKING_LEVEL_MODELS = frozenset(
    {
        "gemini-3-pro-preview",
        "models/gemini-3-pro-preview",
        "gemini-3-flash-preview",
        "models/gemini-3-flash-preview",
    }
)
THINKING_LEVEL_MODEL_MARKER = "gemini-3-pro"

# Thinking models that only understand a token budget.
THINKING_BUDGET_MODELS = frozenset(
    {
        "models/gemini-flash-lite-latest",
        "gemini-2.5-pro",
        "models/gemini-flash-latest",
    }
)
THINKING_BUDGET_MODEL_MARKER = "gemini-2.5"

DEFAULT_THINKING_LEVEL = "HIGH"
DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_IMAGE_SIZE = "1K"

# ==============================================================================
# Tools
# ==============================================================================

GOOGLE_SEARCH_TOOL = "googleSearch"
CODE_EXECUTION_TOOL = "codeExecution"
URL_CONTEXT_TOOL = "urlContext"

DEEP_SEARCH_SYSTEM_PROMPT = (
    "You are in Deep Search mode. Before answering, run several Google searches "
    "that approach the question from different angles, including recent and "
    "authoritative sources. Cross-check facts between sources and note where "
    "they disagree. Structure the answer with clear headings, cite the sources "
    "you relied on, and say explicitly when the evidence is incomplete."
)

# ==============================================================================
# File processing
# ==============================================================================

POLLING_INTERVAL_S = 2.0
MAX_POLLING_DURATION_S = 10 * 60.0
FILE_NAME_PREFIX = "files/"
