"""Authenticated JSON transport for the HAProxy Data Plane API.

Every request goes to ``{url}/{api_version}{path}`` with HTTP Basic auth.
Response bodies differ by API version: v3 returns bare arrays/objects, v2
wraps them in ``{"data": ...}``. :class:`ResponseShape` owns that
difference so callers never inspect the payload themselves.
"""

from __future__ import annotations

import base64
import json
import logging
import ssl
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from dataplane.config import DataplaneConfig
from dataplane.errors import APIError, ResponseDecodeError, TransportError
from dataplane.redact import sanitize

logger = logging.getLogger(__name__)


def _ssl_context(insecure: bool = False) -> ssl.SSLContext:
    """Create an SSL context using certifi CA bundle (macOS workaround)."""
    if insecure:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx
    try:
        import certifi

        return ssl.create_default_context(cafile=certifi.where())
    except ImportError:
        return ssl.create_default_context()


def urlopen_safe(req: urllib.request.Request, timeout: float, context: ssl.SSLContext) -> tuple[int, bytes]:
    """Perform one request and return ``(status, body)`` for any HTTP status.

    Only failures to talk to the server at all raise, as TransportError.
    """
    try:
        with urllib.request.urlopen(req, timeout=timeout, context=context) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()
    except (urllib.error.URLError, OSError) as exc:
        raise TransportError(f"{req.get_method()} {req.full_url}: {exc}") from exc


class ResponseShape(str, Enum):
    BARE = "bare"  # v3
    WRAPPED = "wrapped"  # v2: {"data": ...}

    @classmethod
    def for_version(cls, api_version: str) -> ResponseShape:
        return cls.BARE if api_version == "v3" else cls.WRAPPED

    def decode(self, payload: Any) -> Any:
        if self is ResponseShape.BARE:
            return payload
        if not isinstance(payload, dict) or "data" not in payload:
            raise ResponseDecodeError(f"expected a {{'data': ...}} envelope, got {type(payload).__name__}")
        return payload["data"]


@dataclass
class Response:
    status: int
    content: bytes = b""

    def json(self) -> Any:
        if not self.content.strip():
            return None
        try:
            return json.loads(self.content)
        except ValueError as exc:
            raise ResponseDecodeError(f"invalid JSON in HTTP {self.status} response: {exc}") from exc


def _jsonable(body: Any) -> Any:
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(body, (list, tuple)):
        return [_jsonable(item) for item in body]
    return body


def _parse_api_error(method: str, path: str, status: int, content: bytes) -> APIError:
    text = content.decode("utf-8", errors="replace").strip()
    code: int | None = None
    message = ""
    try:
        parsed = json.loads(text) if text else None
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        message = str(parsed.get("message") or "")
        if isinstance(parsed.get("code"), int):
            code = parsed["code"]
    return APIError(status, sanitize(message or text), code=code, body=sanitize(text), method=method, path=path)


class Transport:
    """Issues requests against one Data Plane API endpoint and version."""

    def __init__(self, config: DataplaneConfig):
        self.api_version = config.api_version
        self.shape = ResponseShape.for_version(config.api_version)
        self._base = f"{config.url}/{config.api_version}"
        token = base64.b64encode(f"{config.username}:{config.password}".encode()).decode("ascii")
        self._headers = {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._timeout = config.timeout
        self._context = _ssl_context(config.insecure)

    def url_for(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        url = f"{self._base}{path}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        return url

    # ------------------------------------------------------------------
    # Raw requests
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> Response:
        """Send one request; raise APIError on any non-2xx status."""
        query = {k: v for k, v in (params or {}).items() if v is not None}
        data = None if body is None else json.dumps(_jsonable(body)).encode("utf-8")
        logger.debug("%s %s params=%s body=%s", method, path, query, sanitize(data))

        status, content = self._send(method, path, query, data)
        logger.debug("%s %s -> %d %s", method, path, status, sanitize(content))

        if not 200 <= status < 300:
            raise _parse_api_error(method, path, status, content)
        return Response(status, content)

    def _send(self, method: str, path: str, params: dict[str, Any], data: bytes | None) -> tuple[int, bytes]:
        req = urllib.request.Request(self.url_for(path, params), data=data, method=method, headers=self._headers)
        return urlopen_safe(req, timeout=self._timeout, context=self._context)

    # ------------------------------------------------------------------
    # Version-aware reads
    # ------------------------------------------------------------------

    def fetch_collection(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        empty_statuses: Iterable[int] = (404,),
    ) -> list[Any]:
        """GET a collection. Statuses in ``empty_statuses`` mean "no entities"."""
        try:
            resp = self.request("GET", path, params=params)
        except APIError as exc:
            if exc.status_code in set(empty_statuses):
                logger.debug("%s returned %d, treating as empty collection", path, exc.status_code)
                return []
            raise
        items = self.shape.decode(resp.json())
        if items is None:
            return []
        if not isinstance(items, list):
            raise ResponseDecodeError(f"expected a list from {path}, got {type(items).__name__}")
        return items

    def fetch_entity(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """GET a single entity; None when the API answers 404."""
        try:
            resp = self.request("GET", path, params=params)
        except APIError as exc:
            if exc.not_found:
                return None
            raise
        entity = self.shape.decode(resp.json())
        if not isinstance(entity, dict):
            raise ResponseDecodeError(f"expected an object from {path}, got {type(entity).__name__}")
        return entity
