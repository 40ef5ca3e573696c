"""Gemchat: a Gemini chat client with streaming, proxies and cancellation.

Public API:
    - build_config(): Turn model id and user settings into a request config
    - stream_chat() / send_chat(): One chat turn, streamed or whole
    - edit_image(): Image editing and generation
    - list_models() / test_connection(): Model catalog and proxy checks
    - upload_file() / get_file_metadata(): File API
    - Settings / Credentials / Endpoint: Connection configuration
    - CancelToken: Cooperative cancellation
"""

from __future__ import annotations

import logging

from gemchat.cancel import CancelToken
from gemchat.catalog import list_models, test_connection
from gemchat.chat import edit_image, send_chat, stream_chat
from gemchat.config import Credentials, Settings
from gemchat.endpoint import Endpoint
from gemchat.errors import (
    AbortError,
    APIError,
    CancellationError,
    ConfigurationError,
    GemchatError,
    MalformedEventError,
    NetworkError,
    RateLimitError,
)
from gemchat.files import get_file_metadata, upload_file
from gemchat.generation import (
    FeatureFlags,
    GenerationConfig,
    ModelOptions,
    SafetySetting,
    SamplingParams,
    build_config,
)
from gemchat.models import (
    ChatHistoryItem,
    ConnectionCheck,
    ModelOption,
    Part,
    ResponseMetadata,
)
from gemchat.transport import Transport

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("gemchat")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("gemchat").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "AbortError",
    "CancelToken",
    "CancellationError",
    "ChatHistoryItem",
    "ConfigurationError",
    "ConnectionCheck",
    "Credentials",
    "Endpoint",
    "FeatureFlags",
    "GemchatError",
    "GenerationConfig",
    "MalformedEventError",
    "ModelOption",
    "ModelOptions",
    "NetworkError",
    "Part",
    "RateLimitError",
    "ResponseMetadata",
    "SafetySetting",
    "SamplingParams",
    "Settings",
    "Transport",
    "build_config",
    "edit_image",
    "get_file_metadata",
    "list_models",
    "send_chat",
    "stream_chat",
    "test_connection",
    "upload_file",
]
