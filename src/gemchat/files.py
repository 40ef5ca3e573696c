"""File upload and metadata via the google-genai SDK.

The SDK is bound to the same normalized :class:`~gemchat.endpoint.Endpoint`
as the raw HTTP calls, so proxies work for uploads too.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import TYPE_CHECKING, Any

from gemchat._errors import extract_status_code, wrap_sdk_error
from gemchat._http import NOT_FOUND_STATUS
from gemchat.cancel import raise_if_cancelled
from gemchat.constants import (
    FILE_NAME_PREFIX,
    MAX_POLLING_DURATION_S,
    POLLING_INTERVAL_S,
)
from gemchat.errors import APIError, CancellationError, ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

    from gemchat.cancel import CancelToken
    from gemchat.config import Credentials

log = logging.getLogger(__name__)


def make_client(credentials: Credentials) -> Any:
    """Create a google-genai client bound to *credentials*.

    This is the only place that tells the SDK about a custom base URL.
    """
    try:
        from google import genai
        from google.genai import types
    except ImportError as e:
        raise ConfigurationError(
            "google-genai package not installed",
            hint="pip install google-genai",
        ) from e

    endpoint = credentials.endpoint
    if endpoint.is_default:
        return genai.Client(api_key=credentials.api_key)
    log.info("Using custom base URL for SDK: %s", endpoint)
    return genai.Client(
        api_key=credentials.api_key,
        http_options=types.HttpOptions(base_url=endpoint.url),
    )


@dataclass(frozen=True)
class ProcessingStatus:
    """Server-side processing state of an uploaded file.

    The SDK reports ``state`` as an enum, a bare string or nothing at all,
    and ``error`` as an object or a string; this flattens both.
    """

    state: str
    error: str | None = None

    @classmethod
    def of(cls, file_obj: Any) -> ProcessingStatus:
        raw = getattr(file_obj, "state", None)
        state = raw if isinstance(raw, str) else None
        if not state:
            state = next(
                (
                    v
                    for v in (getattr(raw, "name", None), getattr(raw, "value", None))
                    if isinstance(v, str) and v
                ),
                "STATE_UNSPECIFIED",
            )

        error = getattr(file_obj, "error", None)
        if not isinstance(error, str):
            error = getattr(error, "message", None)
        return cls(state=state, error=error if isinstance(error, str) else None)

    @property
    def active(self) -> bool:
        return self.state == "ACTIVE"

    def raise_if_failed(self, file_name: str) -> None:
        if self.state == "FAILED":
            log.error("Processing failed for %s: %s", file_name, self.error)
            raise APIError(f"File processing failed: {self.error or 'Unknown error'}")


async def _poll_until_active(
    client: Any,
    file_name: str,
    cancel: CancelToken | None,
    *,
    timeout_s: float,
    poll_interval_s: float,
) -> Any:
    """Re-fetch *file_name* until it is ACTIVE, checking *cancel* each round."""
    deadline = time.monotonic() + timeout_s
    status = ProcessingStatus("STATE_UNSPECIFIED")
    checks = 0

    while time.monotonic() < deadline:
        raise_if_cancelled(cancel)
        file_obj = await client.aio.files.get(name=file_name)
        checks += 1
        status = ProcessingStatus.of(file_obj)
        log.debug("File %s is %s (check %d)", file_name, status.state, checks)
        if status.active:
            return file_obj
        status.raise_if_failed(file_name)
        await asyncio.sleep(min(poll_interval_s, max(deadline - time.monotonic(), 0)))

    raise APIError(
        f"File {file_name} did not become active within {timeout_s:g}s "
        f"({checks} status checks, last state {status.state})",
        hint="Large videos can take minutes to process; retry with a longer timeout.",
    )


async def upload_file(
    credentials: Credentials,
    path: Path,
    mime_type: str,
    display_name: str | None = None,
    cancel: CancelToken | None = None,
    *,
    client: Any = None,
    poll_interval_s: float = POLLING_INTERVAL_S,
    timeout_s: float = MAX_POLLING_DURATION_S,
) -> Any:
    """Upload *path* and wait until the API reports it ACTIVE.

    Returns:
        The SDK ``File`` object (``name``, ``uri``, ``mime_type``, ...).

    Raises:
        CancellationError: When *cancel* is set before or during processing.
        APIError: When the upload or server-side processing fails.
    """
    name = display_name or path.name
    log.info("Uploading file: %s (%s)", name, mime_type)
    if cancel is not None and cancel.cancelled:
        log.warning("Upload for %r cancelled before starting.", name)
        raise CancellationError("Upload cancelled by user.")

    sdk = client or make_client(credentials)
    try:
        result = await sdk.aio.files.upload(
            file=path, config={"mime_type": mime_type, "display_name": name}
        )

        file_name = getattr(result, "name", None)
        if not isinstance(file_name, str) or not file_name:
            raise APIError("Upload did not return a file name")

        status = ProcessingStatus.of(result)
        status.raise_if_failed(file_name)
        if not status.active:
            result = await _poll_until_active(
                sdk,
                file_name,
                cancel,
                timeout_s=timeout_s,
                poll_interval_s=poll_interval_s,
            )
        return result
    except (asyncio.CancelledError, CancellationError):
        raise
    except APIError as e:
        log.error("Failed to upload file %r: %s", name, e)
        raise
    except Exception as e:
        log.error("Failed to upload file %r: %s", name, e)
        raise wrap_sdk_error(e, message="Upload failed") from e


def _is_not_found(exc: BaseException) -> bool:
    if extract_status_code(exc) == NOT_FOUND_STATUS:
        return True
    text = str(exc)
    return "NOT_FOUND" in text or "404" in text


async def get_file_metadata(
    credentials: Credentials, file_name: str, *, client: Any = None
) -> Any | None:
    """Fetch metadata for ``files/<id>``; ``None`` when the file does not exist."""
    if not file_name or not file_name.startswith(FILE_NAME_PREFIX):
        log.error("Invalid file name format: %r", file_name)
        raise ConfigurationError(
            'Invalid file ID format. Expected "files/your_file_id".',
        )

    sdk = client or make_client(credentials)
    log.info("Fetching metadata for file: %s", file_name)
    try:
        return await sdk.aio.files.get(name=file_name)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        if _is_not_found(e):
            return None
        log.error("Failed to get metadata for file %r: %s", file_name, e)
        raise wrap_sdk_error(e, message="File metadata lookup failed") from e
