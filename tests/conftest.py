"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, HTTP fakes built on
``httpx.MockTransport``, and automatic API test skipping. Fixtures in the
isolation and logging sections are autouse.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import suppress
import json
import logging
import os
from typing import Any

import httpx
import pytest

from gemchat.config import Credentials
from gemchat.transport import Transport

Handler = Callable[[httpx.Request], httpx.Response]

PROXY_URL = "http://localhost:8080/v1beta"
TEST_KEY = "test-key"

# =============================================================================
# HTTP Test Doubles
# =============================================================================


def sse_body(*events: dict[str, Any]) -> bytes:
    """Encode *events* the way the streaming endpoint frames them."""
    return b"".join(
        b"data: " + json.dumps(e).encode("utf-8") + b"\r\n\r\n" for e in events
    )


async def iter_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    """Serve *chunks* one by one as a streaming response body."""
    for chunk in chunks:
        yield chunk


class TrackedBody(httpx.AsyncByteStream):
    """A streaming response body that records whether it was closed."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = list(chunks)
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def envelope(*parts: dict[str, Any], **extra: Any) -> dict[str, Any]:
    """Build a one-candidate response envelope carrying *parts*."""
    candidate: dict[str, Any] = {"content": {"role": "model", "parts": list(parts)}}
    for key in ("groundingMetadata", "urlContextMetadata"):
        if key in extra:
            candidate[key] = extra.pop(key)
    return {"candidates": [candidate], **extra}


@pytest.fixture
def make_transport() -> Callable[[Handler], Transport]:
    """Return a factory wiring a request handler into a borrowed client."""

    def _make(handler: Handler) -> Transport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return Transport(client=client)

    return _make


@pytest.fixture
def credentials() -> Credentials:
    """Credentials for the production endpoint."""
    return Credentials.create(TEST_KEY)


@pytest.fixture
def proxy_credentials() -> Credentials:
    """Credentials for a local proxy, pasted with a version suffix."""
    return Credentials.create(TEST_KEY, PROXY_URL)


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_gemini_env(request, monkeypatch):
    """Ensure a clean environment for each test.

    Clears GEMINI_* and GEMCHAT_* env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(("GEMINI_", "GEMCHAT_")):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================

# Cheapest model that still streams thoughts.
_GEMINI_TEST_MODEL = "gemini-2.5-flash-lite"


@pytest.fixture
def gemini_api_key():
    """Return GEMINI_API_KEY or skip the test if unavailable."""
    key = os.getenv("GEMINI_API_KEY")
    if not key:
        pytest.skip("GEMINI_API_KEY not set")
    return key


@pytest.fixture
def gemini_test_model():
    """Return the model to use for Gemini API tests."""
    return _GEMINI_TEST_MODEL
