"""Generic CRUD over every configuration object the Data Plane API exposes.

Each object type is described once in :data:`KINDS` (collection segment,
parent scope, key field). Paths are derived from that description and the
API version:

    v3  /services/haproxy/configuration/backends/web/servers/web1
    v2  /services/haproxy/configuration/servers/web1?parent_type=backend&parent_name=web
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from dataplane.transport import Transport

logger = logging.getLogger(__name__)

CONFIG_PATH = "/services/haproxy/configuration"


class ParentScope(str, Enum):
    NONE = "none"
    PROXY = "proxy"  # frontend or backend
    BACKEND = "backend"
    RESOLVER = "resolver"
    PEERS = "peers"


class KeyType(str, Enum):
    NAME = "name"
    INDEX = "index"
    SINGLETON = "singleton"


@dataclass(frozen=True)
class Parent:
    type: str
    name: str

    @property
    def plural(self) -> str:
        return f"{self.type}s"


@dataclass(frozen=True)
class EntityKind:
    name: str
    collection: str
    scope: ParentScope = ParentScope.NONE
    key: KeyType = KeyType.NAME
    empty_on_422: bool = False
    # v2 query parameter naming the parent, for scopes that don't use parent_type/parent_name
    v2_parent_param: str = ""
    # v3 path segment for the parent collection, when it isn't simply "{type}s"
    v3_parent_segment: str = ""
    # collection segment used by v2 when it differs from v3
    v2_collection: str = ""

    @property
    def is_indexed(self) -> bool:
        return self.key is KeyType.INDEX

    def key_of(self, payload: dict[str, Any]) -> Any:
        field = "index" if self.is_indexed else "name"
        return payload.get(field)


_RULE = dict(scope=ParentScope.PROXY, key=KeyType.INDEX, empty_on_422=True)

KINDS: dict[str, EntityKind] = {
    k.name: k
    for k in (
        EntityKind("frontend", "frontends"),
        EntityKind("backend", "backends"),
        EntityKind("server", "servers", scope=ParentScope.PROXY),
        EntityKind("bind", "binds", scope=ParentScope.PROXY),
        EntityKind("acl", "acls", scope=ParentScope.PROXY, key=KeyType.INDEX),
        EntityKind("http_request_rule", "http_request_rules", **_RULE),
        EntityKind("http_response_rule", "http_response_rules", **_RULE),
        EntityKind("tcp_request_rule", "tcp_request_rules", **_RULE),
        EntityKind("tcp_response_rule", "tcp_response_rules", **_RULE),
        EntityKind("http_check", "http_checks", **_RULE),
        EntityKind("tcp_check", "tcp_checks", **_RULE),
        EntityKind(
            "stick_rule",
            "stick_rules",
            scope=ParentScope.BACKEND,
            key=KeyType.INDEX,
            v2_parent_param="backend",
            v3_parent_segment="backends",
        ),
        EntityKind("stick_table", "stick_tables"),
        EntityKind("resolver", "resolvers"),
        EntityKind(
            "nameserver",
            "nameservers",
            scope=ParentScope.RESOLVER,
            v2_parent_param="resolver",
            v3_parent_segment="resolvers",
        ),
        EntityKind("peers", "peer_section", v2_collection="peers"),
        EntityKind(
            "peer_entry",
            "peer_entries",
            scope=ParentScope.PEERS,
            v2_parent_param="peers",
            v3_parent_segment="peer_section",
        ),
        EntityKind("log_forward", "log_forwards"),
        EntityKind("global", "global", key=KeyType.SINGLETON),
    )
}


def get_kind(name: str) -> EntityKind:
    try:
        return KINDS[name.replace("-", "_")]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {name!r}. Known kinds: {', '.join(sorted(KINDS))}") from None


def _to_body(payload: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    return dict(payload)


class ResourceOperations:
    """list/get/create/replace/delete for any :class:`EntityKind`."""

    def __init__(self, transport: Transport):
        self._transport = transport

    @property
    def api_version(self) -> str:
        return self._transport.api_version

    # ------------------------------------------------------------------
    # Path building
    # ------------------------------------------------------------------

    def route(
        self,
        kind: EntityKind,
        key: Any = None,
        parent: Parent | None = None,
        transaction_id: str | None = None,
    ) -> tuple[str, dict[str, Any]]:
        """Return ``(path, query params)`` for ``kind`` under the configured API version."""
        if kind.scope is not ParentScope.NONE and parent is None:
            raise ValueError(f"{kind.name} requires a parent")
        params: dict[str, Any] = {}
        collection = kind.collection
        if self.api_version == "v2" and kind.v2_collection:
            collection = kind.v2_collection

        if parent is None:
            path = f"{CONFIG_PATH}/{collection}"
        elif self.api_version == "v3":
            segment = kind.v3_parent_segment or parent.plural
            path = f"{CONFIG_PATH}/{segment}/{parent.name}/{collection}"
        else:
            path = f"{CONFIG_PATH}/{collection}"
            if kind.v2_parent_param:
                params[kind.v2_parent_param] = parent.name
            else:
                params.update(parent_type=parent.type, parent_name=parent.name)

        if key is not None and kind.key is not KeyType.SINGLETON:
            path = f"{path}/{key}"
        if transaction_id:
            params["transaction_id"] = transaction_id
        return path, params

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(
        self,
        kind: EntityKind,
        parent: Parent | None = None,
        *,
        transaction_id: str | None = None,
    ) -> list[dict[str, Any]]:
        if kind.key is KeyType.SINGLETON:
            entity = self.get(kind, parent=parent, transaction_id=transaction_id)
            return [entity] if entity else []
        path, params = self.route(kind, parent=parent, transaction_id=transaction_id)
        empty = (404, 422) if kind.empty_on_422 else (404,)
        items = self._transport.fetch_collection(path, params, empty_statuses=empty)
        if kind.is_indexed:
            # v3 drops the index field; position in the list is the index
            items = [{**item, "index": item.get("index", i)} for i, item in enumerate(items)]
        return items

    def get(
        self,
        kind: EntityKind,
        key: Any = None,
        parent: Parent | None = None,
        *,
        transaction_id: str | None = None,
    ) -> dict[str, Any] | None:
        if key is None and kind.key is not KeyType.SINGLETON:
            raise ValueError(f"{kind.name} lookups need a {kind.key.value}")
        path, params = self.route(kind, key, parent, transaction_id)
        entity = self._transport.fetch_entity(path, params)
        if entity is not None and kind.is_indexed:
            entity.setdefault("index", key)
        return entity

    # ------------------------------------------------------------------
    # Mutations (always inside a transaction)
    # ------------------------------------------------------------------

    def create(
        self,
        kind: EntityKind,
        payload: BaseModel | dict[str, Any],
        parent: Parent | None = None,
        *,
        transaction_id: str,
    ) -> Any:
        body = _to_body(payload)
        key = None
        if kind.is_indexed and self.api_version == "v3":
            # v3 inserts indexed objects at the position named in the path
            key = body.pop("index", 0)
        path, params = self.route(kind, key, parent, transaction_id)
        method = "PUT" if kind.key is KeyType.SINGLETON else "POST"
        label = key if key is not None else kind.key_of(body)
        logger.debug("Creating %s %s in transaction %s", kind.name, label, transaction_id)
        return self._transport.request(method, path, params=params, body=body).json()

    def replace(
        self,
        kind: EntityKind,
        key: Any,
        payload: BaseModel | dict[str, Any],
        parent: Parent | None = None,
        *,
        transaction_id: str,
    ) -> Any:
        body = _to_body(payload)
        if kind.is_indexed and self.api_version == "v3":
            body.pop("index", None)
        path, params = self.route(kind, key, parent, transaction_id)
        logger.debug("Replacing %s %s in transaction %s", kind.name, key, transaction_id)
        return self._transport.request("PUT", path, params=params, body=body).json()

    def delete(
        self,
        kind: EntityKind,
        key: Any = None,
        parent: Parent | None = None,
        *,
        transaction_id: str,
    ) -> None:
        path, params = self.route(kind, key, parent, transaction_id)
        logger.debug("Deleting %s %s in transaction %s", kind.name, key, transaction_id)
        self._transport.request("DELETE", path, params=params)
