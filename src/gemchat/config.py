"""Configuration: validated settings, API-key pool and frozen credentials.

``Settings`` is the validation wall for raw user input (a pasted key list,
a proxy URL). ``Credentials`` is the immutable value the core consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
import random
from typing import Any

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from gemchat._http import DEFAULT_TIMEOUT_S
from gemchat.endpoint import Endpoint, normalize_base_url, validate_base_url
from gemchat.errors import ConfigurationError
from gemchat.transport import Transport

log = logging.getLogger(__name__)

API_KEY_ENV_VAR = "GEMINI_API_KEY"
BASE_URL_ENV_VAR = "GEMINI_BASE_URL"
TIMEOUT_ENV_VAR = "GEMCHAT_TIMEOUT_S"

# Characters that sneak into keys copied from documents or chat apps.
_KEY_REPLACEMENTS = str.maketrans(
    {
        "\u2013": "-",
        "\u2014": "-",
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\u00a0": " ",
    }
)


def sanitize_api_key(api_key: str) -> str:
    """Replace typographic dashes, quotes and non-breaking spaces."""
    sanitized = api_key.translate(_KEY_REPLACEMENTS).strip()
    if sanitized != api_key.strip():
        log.warning("API key was sanitized.")
    return sanitized


def parse_api_keys(raw: str | None) -> list[str]:
    """Split a newline-delimited key list, dropping blanks."""
    return [key.strip() for key in (raw or "").splitlines() if key.strip()]


def pick_api_key(raw: str | None) -> str:
    """Pick one key at random from a newline-delimited pool.

    There is no stickiness: every call draws independently.
    """
    keys = parse_api_keys(raw)
    if not keys:
        raise ConfigurationError(
            "API key is not configured.",
            hint=f"Set {API_KEY_ENV_VAR} or pass api_keys=... (one key per line).",
        )
    return random.choice(keys)  # noqa: S311


@dataclass(frozen=True)
class Credentials:
    """An API key bound to an endpoint.

    Example:
        creds = Credentials.create("AIza...", "http://localhost:8080/v1beta")
    """

    api_key: str
    endpoint: Endpoint = field(default_factory=Endpoint)

    def __post_init__(self) -> None:
        """Sanitize the key, normalize the endpoint, fail fast when empty."""
        if not isinstance(self.endpoint, Endpoint):
            object.__setattr__(self, "endpoint", Endpoint.from_url(self.endpoint))
        key = sanitize_api_key(self.api_key or "")
        if not key:
            raise ConfigurationError(
                "API key is not configured.",
                hint=f"Set {API_KEY_ENV_VAR} or pass an API key explicitly.",
            )
        object.__setattr__(self, "api_key", key)

    @classmethod
    def create(cls, api_key: str, base_url: str | None = None) -> Credentials:
        return cls(api_key=api_key, endpoint=Endpoint.from_url(base_url))

    def __str__(self) -> str:
        """Return a redacted representation."""
        return f"Credentials(api_key='[REDACTED]', endpoint={self.endpoint.url!r})"

    __repr__ = __str__


class Settings(BaseModel):
    """User-facing connection settings."""

    #: One or more keys, newline-delimited.
    api_keys: SecretStr | None = Field(default=None)
    #: Custom proxy base URL; ``None`` means the production endpoint.
    base_url: str | None = Field(default=None)
    request_timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)

    model_config = {"extra": "forbid"}

    @field_validator("api_keys", mode="before")
    @classmethod
    def normalize_api_keys(cls, v: Any) -> Any:
        """Trim whitespace, map empty to None, wrap in SecretStr."""
        if v is None:
            return None
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        if isinstance(v, str):
            s = v.strip()
            return SecretStr(s) if s else None
        return v

    @field_validator("base_url", mode="before")
    @classmethod
    def check_base_url(cls, v: Any) -> Any:
        """Map blank URLs to None and reject URLs no request can be sent to."""
        if isinstance(v, str):
            v = v.strip() or None
            if v is not None:
                validate_base_url(normalize_base_url(v))
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:
        """Resolve settings from the environment (and ``.env``), then overrides.

        Explicit overrides win over environment values; ``None`` overrides are
        ignored.
        """
        from dotenv import load_dotenv

        load_dotenv()
        values: dict[str, Any] = {}
        if (keys := os.environ.get(API_KEY_ENV_VAR)) is not None:
            values["api_keys"] = keys
        if (url := os.environ.get(BASE_URL_ENV_VAR)) is not None:
            values["base_url"] = url
        if (timeout := os.environ.get(TIMEOUT_ENV_VAR)) is not None:
            values["request_timeout_s"] = timeout
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid settings: {e.errors()[0].get('msg', e)}",
                hint=(
                    f"Check {API_KEY_ENV_VAR}, {BASE_URL_ENV_VAR} "
                    f"and {TIMEOUT_ENV_VAR}."
                ),
            ) from e

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint.from_url(self.base_url)

    def key_pool(self) -> list[str]:
        raw = self.api_keys.get_secret_value() if self.api_keys else None
        return parse_api_keys(raw)

    def credentials(self) -> Credentials:
        """Credentials for one call, with a key drawn at random from the pool."""
        raw = self.api_keys.get_secret_value() if self.api_keys else None
        return Credentials(api_key=pick_api_key(raw), endpoint=self.endpoint)

    def transport(self) -> Transport:
        """A transport honoring ``request_timeout_s``. The caller closes it."""
        return Transport(timeout_s=self.request_timeout_s)
