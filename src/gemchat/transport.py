"""HTTP transport: one-shot JSON calls and SSE streaming calls.

Every failure leaving this module is a classified gemchat error. Callers
never see raw ``httpx`` exceptions, including ``httpx.InvalidURL``, which is
not an ``httpx.HTTPError``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from gemchat._errors import (
    api_error_from_response,
    invalid_url_error,
    network_error,
)
from gemchat._http import CONNECT_TIMEOUT_S, DEFAULT_TIMEOUT_S
from gemchat.cancel import raise_if_cancelled
from gemchat.endpoint import Endpoint, build_url, redact_url, request_headers
from gemchat.errors import APIError
from gemchat.sse import SSEDecoder

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from gemchat.cancel import CancelToken

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestTarget:
    """Where a generation call goes: endpoint, model, method and key."""

    endpoint: Endpoint
    model_id: str
    method: str
    api_key: str

    def url(self, *, stream: bool = False) -> str:
        return build_url(
            self.endpoint, self.model_id, self.method, self.api_key, stream=stream
        )

    def __repr__(self) -> str:
        return (
            f"RequestTarget(endpoint={self.endpoint.url!r}, "
            f"model_id={self.model_id!r}, method={self.method!r}, "
            "api_key='[REDACTED]')"
        )


class Transport:
    """Thin async wrapper around an ``httpx.AsyncClient``.

    A client passed in by the caller is borrowed and left open; a client
    created lazily here is owned and closed by :meth:`aclose`.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout_s, connect=CONNECT_TIMEOUT_S),
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying client when this transport created it."""
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def request(
        self,
        target: RequestTarget,
        payload: dict[str, Any],
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        """POST *payload* and return the decoded JSON response."""
        raise_if_cancelled(cancel)
        url = target.url()
        headers = request_headers(target.endpoint)
        log.debug(
            "POST %s (payload keys=%s, content-type=%s)",
            redact_url(url),
            sorted(payload),
            headers["Content-Type"],
        )

        client = self._get_client()
        try:
            response = await client.post(
                url, content=json.dumps(payload).encode("utf-8"), headers=headers
            )
        except asyncio.CancelledError:
            raise
        except httpx.InvalidURL as e:
            raise invalid_url_error(e, target.endpoint.url) from e
        except httpx.HTTPError as e:
            log.warning("POST %s failed: %s", redact_url(url), e)
            raise network_error(e, target.endpoint) from e

        if not response.is_success:
            raise api_error_from_response(
                response.status_code, response.text, response.reason_phrase
            )

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(
                "API returned a response that is not valid JSON",
                status_code=response.status_code,
                body=response.text[:600] or None,
            ) from e
        if not isinstance(data, dict):
            raise APIError(
                f"API returned a JSON {type(data).__name__}, expected an object",
                status_code=response.status_code,
            )
        return data

    async def stream(
        self,
        target: RequestTarget,
        payload: dict[str, Any],
        cancel: CancelToken | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """POST *payload* and yield one decoded envelope per SSE event.

        The sequence is finite and can be consumed once. The response is
        released on every exit path; consumers that may stop early should
        wrap the iterator in :func:`contextlib.aclosing`.
        """
        raise_if_cancelled(cancel)
        url = target.url(stream=True)
        headers = request_headers(target.endpoint)
        log.debug(
            "POST (stream) %s (content-type=%s)",
            redact_url(url),
            headers["Content-Type"],
        )

        client = self._get_client()
        decoder = SSEDecoder()
        events = 0
        try:
            async with client.stream(
                "POST",
                url,
                content=json.dumps(payload).encode("utf-8"),
                headers=headers,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise api_error_from_response(
                        response.status_code, response.text, response.reason_phrase
                    )

                async for chunk in response.aiter_bytes():
                    raise_if_cancelled(cancel)
                    for event in decoder.feed(chunk):
                        events += 1
                        yield event

                for event in decoder.flush():
                    events += 1
                    yield event
        except asyncio.CancelledError:
            raise
        except httpx.InvalidURL as e:
            raise invalid_url_error(e, target.endpoint.url) from e
        except httpx.HTTPError as e:
            log.warning("Stream %s failed: %s", redact_url(url), e)
            raise network_error(e, target.endpoint) from e
        finally:
            log.debug(
                "Stream closed after %d events (%d malformed skipped)",
                events,
                decoder.skipped,
            )

    async def get(
        self,
        url: str,
        endpoint: Endpoint,
        cancel: CancelToken | None = None,
    ) -> httpx.Response:
        """Issue a plain GET and return the response, whatever its status.

        No custom headers are sent so proxies see a CORS "simple" request.
        """
        raise_if_cancelled(cancel)
        log.debug("GET %s", redact_url(url))
        client = self._get_client()
        try:
            response = await client.get(url)
        except asyncio.CancelledError:
            raise
        except httpx.InvalidURL as e:
            raise invalid_url_error(e, endpoint.url) from e
        except httpx.HTTPError as e:
            log.warning("GET %s failed: %s", redact_url(url), e)
            raise network_error(e, endpoint) from e
        return response
