"""Shared fixtures for core tests.

``FakeDataplane`` is a Transport whose ``_send`` answers from memory instead
of the network. It keeps a committed configuration plus one staged copy per
open transaction, bumps the version on commit, and speaks both the v2 (flat
paths, ``{"data": ...}`` bodies) and v3 (nested paths, bare bodies) dialects.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any

import pytest
from dataplane.bundle import ACLEntry, BindEntry, ResourceBundle, ServerEntry
from dataplane.client import DataplaneClient
from dataplane.config import DataplaneConfig
from dataplane.models import ACL, Backend, Balance, Bind, Frontend, Server
from dataplane.resources import CONFIG_PATH, KINDS
from dataplane.transaction import TRANSACTIONS_PATH, VERSION_PATH
from dataplane.transport import Transport

INDEXED_COLLECTIONS = {k.collection for k in KINDS.values() if k.is_indexed}
_V2_PARENT_PARAMS = ("parent_name", "backend", "resolver", "peers")

Store = dict[tuple[str, Any], list[dict[str, Any]]]


@dataclass
class Failure:
    method: str
    contains: str
    status: int
    message: str
    times: int
    after: int = 0


@dataclass
class Call:
    method: str
    path: str
    params: dict[str, Any]
    body: Any = None


@dataclass
class Txn:
    id: str
    version: int
    store: Store = field(default_factory=dict)


class FakeDataplane(Transport):
    def __init__(self, api_version: str = "v3"):
        super().__init__(
            DataplaneConfig(url="http://dataplane.test:5555", username="admin", password="s3cret", api_version=api_version)
        )
        self.version = 1
        self.store: Store = {}
        self.transactions: dict[str, Txn] = {}
        self.failures: list[Failure] = []
        self.calls: list[Call] = []
        self.begun: list[str] = []
        self.committed: list[str] = []
        self.rolled_back: list[str] = []
        self._next_txn = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail(self, method: str, contains: str, status: int, message: str, times: int = 1, after: int = 0) -> None:
        """Answer ``times`` matching requests with an error, letting the first ``after`` through."""
        self.failures.append(Failure(method, contains, status, message, times, after))

    def seed(self, collection: str, item: dict[str, Any], parent: str | None = None) -> None:
        self.store.setdefault((collection, parent), []).append(dict(item))

    def items(self, collection: str, parent: str | None = None) -> list[dict[str, Any]]:
        return self.store.get((collection, parent), [])

    def names(self, collection: str, parent: str | None = None) -> list[str]:
        return [i.get("name") or i.get("acl_name") for i in self.items(collection, parent)]

    def mutations(self) -> list[Call]:
        return [c for c in self.calls if c.method != "GET" and CONFIG_PATH in c.path]

    def calls_to(self, method: str, contains: str = "") -> list[Call]:
        return [c for c in self.calls if c.method == method and contains in c.path]

    # ------------------------------------------------------------------
    # Wire emulation
    # ------------------------------------------------------------------

    def _send(self, method: str, path: str, params: dict[str, Any], data: bytes | None) -> tuple[int, bytes]:
        body = json.loads(data) if data else None
        self.calls.append(Call(method, path, dict(params), body))

        target = f"{path}?{'&'.join(f'{k}={v}' for k, v in params.items())}"
        for failure in self.failures:
            if failure.times > 0 and failure.method == method and failure.contains in target:
                if failure.after > 0:
                    failure.after -= 1
                    continue
                failure.times -= 1
                return self._error(failure.status, failure.message)

        if path == VERSION_PATH:
            payload: Any = self.version if self.api_version == "v3" else {"version": self.version}
            return 200, json.dumps(payload).encode()
        if path == TRANSACTIONS_PATH and method == "POST":
            return self._begin(params)
        if path.startswith(TRANSACTIONS_PATH + "/"):
            return self._end(method, path.rsplit("/", 1)[1])
        if path.startswith(CONFIG_PATH + "/"):
            return self._config(method, path[len(CONFIG_PATH) + 1 :], params, body)
        return self._error(404, f"no route for {method} {path}")

    def _error(self, status: int, message: str) -> tuple[int, bytes]:
        return status, json.dumps({"code": status, "message": message}).encode()

    def _ok(self, status: int, payload: Any = None, wrap: bool = False) -> tuple[int, bytes]:
        if payload is None:
            return status, b""
        if wrap and self.api_version == "v2":
            payload = {"_version": self.version, "data": payload}
        return status, json.dumps(payload).encode()

    def _begin(self, params: dict[str, Any]) -> tuple[int, bytes]:
        if "version" not in params:
            return self._error(400, "version or transaction not specified")
        version = int(params["version"])
        if version != self.version:
            return self._error(409, f"version mismatch: have {self.version}, got {version}")
        self._next_txn += 1
        txn = Txn(f"txn-{self._next_txn}", version, copy.deepcopy(self.store))
        self.transactions[txn.id] = txn
        self.begun.append(txn.id)
        return self._ok(201, {"_version": version, "id": txn.id, "status": "in_progress"})

    def _end(self, method: str, txn_id: str) -> tuple[int, bytes]:
        txn = self.transactions.get(txn_id)
        if txn is None:
            return self._error(404, f"transaction {txn_id} does not exist")
        if method == "DELETE":
            del self.transactions[txn_id]
            self.rolled_back.append(txn_id)
            return self._ok(204)
        if txn.version != self.version:
            del self.transactions[txn_id]
            return self._error(406, f"transaction {txn_id} is outdated and cannot be committed")
        del self.transactions[txn_id]
        self.store = txn.store
        self.version += 1
        self.committed.append(txn_id)
        return self._ok(202, {"id": txn_id, "_version": txn.version, "status": "success"})

    def _parse(self, rest: str, params: dict[str, Any]) -> tuple[str, Any, str | None, str | None]:
        """Return (collection, parent name, key, parent collection)."""
        segments = rest.strip("/").split("/")
        if self.api_version == "v3" and len(segments) >= 3:
            parent_collection = segments[0]
            parent = segments[1]
            collection = segments[2]
            key = segments[3] if len(segments) > 3 else None
        else:
            collection = segments[0]
            key = segments[1] if len(segments) > 1 else None
            parent = next((params[p] for p in _V2_PARENT_PARAMS if p in params), None)
            parent_type = params.get("parent_type") or ("backend" if "backend" in params else None)
            parent_collection = f"{parent_type}s" if parent_type else None
        return collection, parent, key, parent_collection

    def _config(self, method: str, rest: str, params: dict[str, Any], body: Any) -> tuple[int, bytes]:
        txn_id = params.get("transaction_id")
        if method != "GET" and not txn_id:
            return self._error(400, "version or transaction not specified")
        store = self.store
        if txn_id:
            txn = self.transactions.get(txn_id)
            if txn is None:
                return self._error(404, f"transaction {txn_id} does not exist")
            store = txn.store

        collection, parent, key, parent_collection = self._parse(rest, params)
        items = store.setdefault((collection, parent), [])
        indexed = collection in INDEXED_COLLECTIONS

        def find() -> int | None:
            if key is None:
                return None
            if indexed:
                i = int(key)
                return i if 0 <= i < len(items) else None
            return next((i for i, item in enumerate(items) if item.get("name") == key), None)

        if method == "GET":
            if key is None:
                listed = items
                if indexed and self.api_version == "v3":
                    listed = [{k: v for k, v in item.items() if k != "index"} for item in items]
                return self._ok(200, copy.deepcopy(listed), wrap=True)
            pos = find()
            if pos is None:
                return self._error(404, f"missing object: {collection} {key}")
            return self._ok(200, copy.deepcopy(items[pos]), wrap=True)

        if method == "POST":
            if parent_collection in ("backends", "frontends"):
                if not any(p.get("name") == parent for p in store.get((parent_collection, None), [])):
                    return self._error(404, f"missing object: {parent_collection} {parent}")
            if indexed:
                index = int(key) if key is not None else int(body.get("index", len(items)))
                body = {**body, "index": index}
                items.insert(min(index, len(items)), body)
                for i, item in enumerate(items):
                    item["index"] = i
            else:
                if any(item.get("name") == body.get("name") for item in items):
                    return self._error(409, f"object {body.get('name')} already exists")
                items.append(body)
            return self._ok(201, body)

        if method == "PUT" and key is None:
            items[:] = [body]
            return self._ok(202, body)

        pos = find()
        if pos is None:
            return self._error(404, f"missing object: {collection} {key}")
        if method == "PUT":
            if indexed:
                body = {**body, "index": pos}
            items[pos] = body
            return self._ok(202, body)
        if method == "DELETE":
            items.pop(pos)
            if indexed:
                for i, item in enumerate(items):
                    item["index"] = i
            return self._ok(204)
        return self._error(405, f"method {method} not allowed")


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def fake() -> FakeDataplane:
    return FakeDataplane("v3")


@pytest.fixture
def fake_v2() -> FakeDataplane:
    return FakeDataplane("v2")


@pytest.fixture(params=["v2", "v3"])
def any_fake(request) -> FakeDataplane:
    return FakeDataplane(request.param)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_client(sleeps):
    def _make(transport: FakeDataplane, **overrides: Any) -> DataplaneClient:
        config = transport_config(transport, **overrides)
        return DataplaneClient(config, transport=transport, sleep=sleeps.append)

    return _make


@pytest.fixture
def client(fake, make_client) -> DataplaneClient:
    return make_client(fake)


def transport_config(transport: FakeDataplane, **overrides: Any) -> DataplaneConfig:
    values = {
        "url": "http://dataplane.test:5555",
        "username": "admin",
        "password": "s3cret",
        "api_version": transport.api_version,
    }
    values.update(overrides)
    return DataplaneConfig(**values)


@pytest.fixture
def sample_bundle() -> ResourceBundle:
    """Backend with two servers, a frontend with one bind and three ACLs."""
    return ResourceBundle(
        name="web",
        backend=Backend(name="web", mode="http", balance=Balance(algorithm="roundrobin")),
        servers=[
            ServerEntry(server=Server(name="web1", address="10.0.0.1", port=8080, check="enabled")),
            ServerEntry(server=Server(name="web2", address="10.0.0.2", port=8080, check="enabled")),
        ],
        frontend=Frontend(name="fe_web", mode="http", default_backend="web"),
        binds=[BindEntry(bind=Bind(name="http", address="*", port=80))],
        acls=[
            ACLEntry(acl=ACL(acl_name="is_api", index=0, criterion="path_beg", value="/api")),
            ACLEntry(acl=ACL(acl_name="is_admin", index=1, criterion="path_beg", value="/admin")),
            ACLEntry(acl=ACL(acl_name="is_static", index=2, criterion="path_end", value=".css")),
        ],
    )
