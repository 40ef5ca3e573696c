"""Small HTTP-related constants shared across gemchat.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com"
API_VERSION = "v1beta"

JSON_CONTENT_TYPE = "application/json"
# Proxy requests use a CORS-safelisted content type so no preflight is sent.
PLAIN_CONTENT_TYPE = "text/plain"

# Streams from thinking models can idle for minutes between chunks.
DEFAULT_TIMEOUT_S = 300.0
CONNECT_TIMEOUT_S = 10.0

NOT_FOUND_STATUS = 404
FORBIDDEN_STATUS = 403
RATE_LIMIT_STATUS = 429
