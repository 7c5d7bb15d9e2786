"""Mask credentials in request/response bodies before they reach a log line."""

from __future__ import annotations

import re

SENSITIVE_FIELDS = ("password", "token", "secret", "key", "auth")

_FIELD_PATTERNS = [
    (re.compile(rf'"{field}"\s*:\s*"[^"]*"'), f'"{field}": "***"') for field in SENSITIVE_FIELDS
]
_INVALID_PASSWORD = re.compile(r"invalid password:\s*[^\s\"]*")


def sanitize(body: str | bytes | None) -> str:
    """Return ``body`` with sensitive JSON string fields replaced by ``***``."""
    if body is None:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    for pattern, replacement in _FIELD_PATTERNS:
        body = pattern.sub(replacement, body)
    return _INVALID_PASSWORD.sub("invalid password: ***", body)
