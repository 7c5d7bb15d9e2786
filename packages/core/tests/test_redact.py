"""Tests for credential masking in logged bodies."""

from __future__ import annotations

import pytest
from dataplane.redact import sanitize


@pytest.mark.parametrize("field", ["password", "token", "secret", "key", "auth"])
def test_sensitive_field_masked(field: str):
    out = sanitize(f'{{"{field}": "hunter2", "name": "web"}}')
    assert "hunter2" not in out
    assert f'"{field}": "***"' in out
    assert '"name": "web"' in out


def test_invalid_password_message_masked():
    out = sanitize('{"code": 401, "message": "invalid password: hunter2"}')
    assert "hunter2" not in out
    assert "invalid password: ***" in out


def test_bytes_and_none():
    assert sanitize(None) == ""
    assert sanitize(b'{"password":"x"}') == '{"password": "***"}'


def test_untouched_when_nothing_sensitive():
    body = '{"name": "web1", "address": "10.0.0.1"}'
    assert sanitize(body) == body
