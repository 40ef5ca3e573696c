"""Model listing and connection checks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from gemchat._errors import extract_error_message
from gemchat._http import FORBIDDEN_STATUS, NOT_FOUND_STATUS
from gemchat.config import parse_api_keys, pick_api_key, sanitize_api_key
from gemchat.endpoint import Endpoint, models_url
from gemchat.errors import APIError, ConfigurationError, GemchatError
from gemchat.models import ConnectionCheck, ModelOption
from gemchat.transport import Transport

log = logging.getLogger(__name__)

# Guards against a proxy that keeps handing out the same page token.
MAX_MODEL_PAGES = 20


def _decode_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise APIError(
            "Model listing returned a response that is not valid JSON",
            status_code=response.status_code,
        ) from e
    return data if isinstance(data, dict) else {}


async def _fetch_models(
    transport: Transport, endpoint: Endpoint, api_key: str
) -> list[dict[str, Any]]:
    models: list[dict[str, Any]] = []
    page_token: str | None = None
    for _ in range(MAX_MODEL_PAGES):
        url = models_url(endpoint, api_key, page_token=page_token)
        response = await transport.get(url, endpoint)
        if not response.is_success:
            raise APIError(
                f"Failed to list models: {response.status_code} "
                f"{response.reason_phrase}".rstrip(),
                status_code=response.status_code,
                body=response.text or None,
            )
        data = _decode_json(response)
        page = data.get("models")
        if isinstance(page, list):
            models.extend(m for m in page if isinstance(m, dict) and m.get("name"))
        next_token = data.get("nextPageToken")
        if not isinstance(next_token, str) or next_token in ("", page_token):
            break
        page_token = next_token
    return models


async def list_models(
    api_keys: str | None,
    base_url: str | Endpoint | None = None,
    *,
    transport: Transport | None = None,
) -> list[ModelOption]:
    """List the models available to a random key from *api_keys*.

    Args:
        api_keys: Newline-delimited key pool; one key is drawn at random.
        base_url: Optional proxy URL; the production endpoint otherwise.
        transport: Optional shared transport.

    Returns:
        Model options sorted by display name.

    Raises:
        ConfigurationError: When no key is configured or *base_url* is not a
            usable http(s) URL.
        APIError: On a non-2xx response or an empty model list.
        NetworkError: When the endpoint cannot be reached.
    """
    log.info("Fetching available models...")
    if not parse_api_keys(api_keys):
        log.warning("list_models called with no API keys.")
    api_key = sanitize_api_key(pick_api_key(api_keys))
    endpoint = Endpoint.from_url(base_url)

    active = transport or Transport()
    try:
        raw_models = await _fetch_models(active, endpoint, api_key)
    except GemchatError as e:
        log.error("Failed to fetch available models: %s", e)
        raise
    finally:
        if transport is None:
            await active.aclose()

    options = [ModelOption.from_api(m) for m in raw_models]
    if not options:
        raise APIError("API returned an empty list of models.")
    return sorted(options, key=lambda o: o.name.casefold())


def _http_failure_message(response: httpx.Response) -> str:
    message = f"HTTP {response.status_code}"
    if response.status_code == NOT_FOUND_STATUS:
        message += " (Not Found - Check Proxy URL)"
    elif response.status_code == FORBIDDEN_STATUS:
        message += " (Forbidden - Check API Key)"
    text = response.text
    detail = extract_error_message(text)
    return f"{message}: {detail}" if detail else f"{message}: {text[:100]}"


async def test_connection(
    api_keys: str | None,
    base_url: str | None = None,
    *,
    transport: Transport | None = None,
) -> ConnectionCheck:
    """Check that *base_url* answers the model listing with the first key.

    Connection problems are reported in the result instead of raised. Passing
    a blank (but not ``None``) *base_url* means a proxy was enabled without a
    URL, which is reported as such.
    """
    keys = parse_api_keys(api_keys)
    if not keys:
        return ConnectionCheck(False, "API Key is required for testing.")
    if base_url is not None and not base_url.strip():
        return ConnectionCheck(False, "Proxy URL is enabled but empty.")

    try:
        endpoint = Endpoint.from_url(base_url)
    except ConfigurationError as e:
        return ConnectionCheck(False, str(e))
    api_key = sanitize_api_key(keys[0])
    active = transport or Transport()
    try:
        response = await active.get(models_url(endpoint, api_key), endpoint)
        if not response.is_success:
            return ConnectionCheck(False, _http_failure_message(response))
        models = _decode_json(response).get("models") or []
    except asyncio.CancelledError:
        raise
    except GemchatError as e:
        log.warning("Connection test against %s failed: %s", endpoint, e)
        return ConnectionCheck(False, str(e))
    finally:
        if transport is None:
            await active.aclose()

    count = len(models) if isinstance(models, list) else 0
    if count > 0:
        return ConnectionCheck(True, f"Connected! Found {count} models.", count)
    return ConnectionCheck(False, "Connected, but no models returned.")


# Not a pytest test despite the name.
test_connection.__test__ = False  # type: ignore[attr-defined]
