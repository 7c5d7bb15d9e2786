"""Resource bundles: a backend, its servers, a frontend, its binds, ACLs and rules.

A bundle is applied as one unit inside one transaction. Dependencies fix the
order: the frontend's default_backend must exist before the frontend, binds
live under the frontend, and rules come after the ACLs they reference.
Deletes run the same order in reverse.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from dataplane.errors import APIError, ResourceOperationError
from dataplane.models import ACL, Backend, Bind, Frontend, Rule, Server
from dataplane.resources import KINDS, EntityKind, Parent, ResourceOperations
from dataplane.retry import is_retryable

logger = logging.getLogger(__name__)

_BACKEND = KINDS["backend"]
_FRONTEND = KINDS["frontend"]


class Entry(BaseModel):
    """A child object plus the proxy it lives under."""

    parent_type: str = ""
    parent_name: str = ""

    @property
    def parent(self) -> Parent:
        return Parent(self.parent_type, self.parent_name)

    @property
    def item(self) -> Any:
        raise NotImplementedError

    @property
    def name(self) -> str:
        raise NotImplementedError


class ServerEntry(Entry):
    parent_type: str = "backend"
    server: Server

    @property
    def item(self) -> Server:
        return self.server

    @property
    def name(self) -> str:
        return self.server.name


class BindEntry(Entry):
    parent_type: str = "frontend"
    bind: Bind

    @property
    def item(self) -> Bind:
        return self.bind

    @property
    def name(self) -> str:
        return self.bind.name


class ACLEntry(Entry):
    acl: ACL

    @property
    def item(self) -> ACL:
        return self.acl

    @property
    def name(self) -> str:
        return self.acl.acl_name


class RuleEntry(Entry):
    rule: Rule

    @property
    def item(self) -> Rule:
        return self.rule

    @property
    def name(self) -> str:
        extra = self.rule.model_extra or {}
        return self.rule.type or str(extra.get("action") or "rule")


@dataclass(frozen=True)
class Section:
    """One list of child objects in a bundle."""

    attr: str
    kind: EntityKind
    label: str
    # "" means the bundle's frontend when it has one, else its backend
    default_parent: str
    # which of the bundle's own proxies an update reconciles this list against
    owners: tuple[str, ...]

    def entries(self, bundle: ResourceBundle) -> list[Any]:
        return getattr(bundle, self.attr)


SERVERS = Section("servers", KINDS["server"], "server", "backend", ("backend",))
BINDS = Section("binds", KINDS["bind"], "bind", "frontend", ("frontend",))
ACLS = Section("acls", KINDS["acl"], "ACL", "", ("frontend", "backend"))

# Creation order; ACLs first so rules can reference them
RULE_SECTIONS: tuple[Section, ...] = (
    Section("http_request_rules", KINDS["http_request_rule"], "http-request rule", "", ("frontend", "backend")),
    Section("http_response_rules", KINDS["http_response_rule"], "http-response rule", "", ("frontend", "backend")),
    Section("tcp_request_rules", KINDS["tcp_request_rule"], "tcp-request rule", "", ("frontend", "backend")),
    Section("tcp_response_rules", KINDS["tcp_response_rule"], "tcp-response rule", "backend", ("backend",)),
    Section("http_checks", KINDS["http_check"], "http-check", "backend", ("backend",)),
    Section("tcp_checks", KINDS["tcp_check"], "tcp-check", "backend", ("backend",)),
)
INDEXED_SECTIONS: tuple[Section, ...] = (ACLS, *RULE_SECTIONS)
CHILD_SECTIONS: tuple[Section, ...] = (SERVERS, BINDS, *INDEXED_SECTIONS)


class ResourceBundle(BaseModel):
    """Everything one load-balanced service needs, applied atomically."""

    name: str = ""
    backend: Backend | None = None
    servers: list[ServerEntry] = Field(default_factory=list)
    frontend: Frontend | None = None
    binds: list[BindEntry] = Field(default_factory=list)
    acls: list[ACLEntry] = Field(default_factory=list)
    http_request_rules: list[RuleEntry] = Field(default_factory=list)
    http_response_rules: list[RuleEntry] = Field(default_factory=list)
    tcp_request_rules: list[RuleEntry] = Field(default_factory=list)
    tcp_response_rules: list[RuleEntry] = Field(default_factory=list)
    http_checks: list[RuleEntry] = Field(default_factory=list)
    tcp_checks: list[RuleEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def fill_parents(self) -> ResourceBundle:
        # Entries without an explicit parent belong to the bundle's own backend/frontend.
        # Indexed entries without an index take their list position under that parent.
        for section in CHILD_SECTIONS:
            positions: dict[Parent, int] = {}
            for entry in section.entries(self):
                self._attach(entry, section)
                if section.kind.is_indexed:
                    position = positions.get(entry.parent, 0)
                    positions[entry.parent] = position + 1
                    if entry.item.index is None:
                        entry.item.index = position
        return self

    def _attach(self, entry: Entry, section: Section) -> None:
        if not entry.parent_type:
            entry.parent_type = section.default_parent or ("frontend" if self.frontend is not None else "backend")
        if entry.parent_name:
            return
        owner = self.owner(entry.parent_type)
        if owner is None:
            raise ValueError(
                f"{section.label} {entry.name!r} has no parent_name and the bundle has no {entry.parent_type}"
            )
        entry.parent_name = owner.name

    def owner(self, parent_type: str) -> Backend | Frontend | None:
        if parent_type == "backend":
            return self.backend
        if parent_type == "frontend":
            return self.frontend
        return None

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        for obj in (self.frontend, self.backend):
            if obj is not None:
                return obj.name
        return "bundle"

    def is_empty(self) -> bool:
        return self.backend is None and self.frontend is None and not any(s.entries(self) for s in CHILD_SECTIONS)

    def to_yaml(self) -> str:
        data = self.model_dump(mode="json", exclude_none=True)
        data = {k: v for k, v in data.items() if v != []}
        return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> ResourceBundle:
        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: str | Path) -> ResourceBundle:
        p = Path(path)
        text = p.read_text()
        if p.suffix in (".yaml", ".yml"):
            return cls.from_yaml(text)
        return cls.model_validate_json(text)


# ----------------------------------------------------------------------
# Step plans
# ----------------------------------------------------------------------


@dataclass
class Step:
    """One API call in a bundle plan. ``run`` receives the ops and transaction id."""

    label: str
    action: str
    run: Callable[[ResourceOperations, str], Any]
    ignore_absent: bool = False


# (kind name, parent) -> keys already on the server: names, or indexes for indexed kinds
Existing = dict[tuple[str, Parent], list[Any]]


def _numbered(kind: str, i: int, total: int, name: str) -> str:
    return f"{kind} {i}/{total} ({name})"


def _ordered(section: Section, entries: list[Any], reverse: bool = False) -> list[tuple[int, Any]]:
    """``(list position, entry)`` pairs; indexed entries sorted by index."""
    numbered = list(enumerate(entries, 1))
    if section.kind.is_indexed:
        return sorted(numbered, key=lambda pair: pair[1].item.index, reverse=reverse)
    return numbered[::-1] if reverse else numbered


def _create_step(section: Section, i: int, total: int, entry: Entry) -> Step:
    return Step(
        _numbered(section.label, i, total, entry.name),
        "create",
        lambda ops, tx: ops.create(section.kind, entry.item, entry.parent, transaction_id=tx),
    )


def _replace_step(section: Section, i: int, total: int, entry: Entry) -> Step:
    key = entry.item.index if section.kind.is_indexed else entry.name
    return Step(
        _numbered(section.label, i, total, entry.name),
        "update",
        lambda ops, tx: ops.replace(section.kind, key, entry.item, entry.parent, transaction_id=tx),
    )


def _delete_step(section: Section, label: str, key: Any, parent: Parent) -> Step:
    return Step(
        label,
        "delete",
        lambda ops, tx: ops.delete(section.kind, key, parent, transaction_id=tx),
        ignore_absent=section.kind.is_indexed,
    )


def create_plan(bundle: ResourceBundle) -> list[Step]:
    """backend -> servers -> frontend -> binds -> ACLs -> rules and checks."""
    steps: list[Step] = []
    if bundle.backend is not None:
        backend = bundle.backend
        steps.append(
            Step(f"backend {backend.name}", "create", lambda ops, tx: ops.create(_BACKEND, backend, transaction_id=tx))
        )
    steps.extend(_create_step(SERVERS, i, len(bundle.servers), e) for i, e in _ordered(SERVERS, bundle.servers))
    if bundle.frontend is not None:
        frontend = bundle.frontend
        steps.append(
            Step(
                f"frontend {frontend.name}", "create", lambda ops, tx: ops.create(_FRONTEND, frontend, transaction_id=tx)
            )
        )
    steps.extend(_create_step(BINDS, i, len(bundle.binds), e) for i, e in _ordered(BINDS, bundle.binds))
    for section in INDEXED_SECTIONS:
        entries = section.entries(bundle)
        steps.extend(_create_step(section, i, len(entries), e) for i, e in _ordered(section, entries))
    return steps


def _reconcile_parents(bundle: ResourceBundle, section: Section) -> list[Parent]:
    parents = {e.parent: None for e in section.entries(bundle)}
    for parent_type in section.owners:
        owner = bundle.owner(parent_type)
        if owner is not None:
            parents.setdefault(Parent(parent_type, owner.name), None)
    return list(parents)


def read_existing(ops: ResourceOperations, bundle: ResourceBundle, transaction_id: str) -> Existing:
    """Keys of the children currently under every parent an update reconciles."""
    existing: Existing = {}
    for section in CHILD_SECTIONS:
        for parent in _reconcile_parents(bundle, section):
            items = ops.list(section.kind, parent, transaction_id=transaction_id)
            existing[(section.kind.name, parent)] = [section.kind.key_of(item) for item in items]
    return existing


def _reconcile(bundle: ResourceBundle, section: Section, existing: Existing) -> list[Step]:
    """Delete children the bundle dropped, then replace the ones still there and create the rest."""
    entries = section.entries(bundle)
    steps: list[Step] = []
    live_count: dict[Parent, int] = {}
    for parent in _reconcile_parents(bundle, section):
        live = existing.get((section.kind.name, parent), [])
        desired = [e for e in entries if e.parent == parent]
        where = f"{parent.type} {parent.name}"
        if section.kind.is_indexed:
            surplus = sorted((i for i in live if i >= len(desired)), reverse=True)
            for index in surplus:
                steps.append(_delete_step(section, f"{section.label} {index} ({where})", index, parent))
            live_count[parent] = len(live) - len(surplus)
        else:
            wanted = {e.name for e in desired}
            for name in reversed(live):
                if name not in wanted:
                    steps.append(_delete_step(section, f"{section.label} {name} ({where})", name, parent))

    for i, entry in _ordered(section, entries):
        if section.kind.is_indexed:
            present = entry.item.index < live_count.get(entry.parent, 0)
        else:
            present = entry.name in existing.get((section.kind.name, entry.parent), [])
        make = _replace_step if present else _create_step
        steps.append(make(section, i, len(entries), entry))
    return steps


def update_plan(bundle: ResourceBundle, existing: Existing) -> list[Step]:
    """Same order as create.

    The backend and frontend are replaced in place. Children are reconciled
    against ``existing`` (see :func:`read_existing`): ones the bundle no
    longer lists are deleted, ones already there are replaced, new ones created.
    """
    steps: list[Step] = []
    if bundle.backend is not None:
        backend = bundle.backend
        steps.append(
            Step(
                f"backend {backend.name}",
                "update",
                lambda ops, tx: ops.replace(_BACKEND, backend.name, backend, transaction_id=tx),
            )
        )
    steps.extend(_reconcile(bundle, SERVERS, existing))
    if bundle.frontend is not None:
        frontend = bundle.frontend
        steps.append(
            Step(
                f"frontend {frontend.name}",
                "update",
                lambda ops, tx: ops.replace(_FRONTEND, frontend.name, frontend, transaction_id=tx),
            )
        )
    steps.extend(_reconcile(bundle, BINDS, existing))
    for section in INDEXED_SECTIONS:
        steps.extend(_reconcile(bundle, section, existing))
    return steps


def delete_plan(bundle: ResourceBundle) -> list[Step]:
    """Checks and rules -> ACLs -> binds -> frontend -> servers -> backend.

    Indexed objects go highest index first: deleting index 0 would shift every
    later entry down by one and the remaining indexes would point at the wrong rules.
    """
    steps: list[Step] = []
    for section in reversed(INDEXED_SECTIONS):
        entries = section.entries(bundle)
        for i, entry in _ordered(section, entries, reverse=True):
            label = _numbered(section.label, i, len(entries), entry.name)
            steps.append(_delete_step(section, label, entry.item.index, entry.parent))
    for i, entry in _ordered(BINDS, bundle.binds, reverse=True):
        steps.append(_delete_step(BINDS, _numbered("bind", i, len(bundle.binds), entry.name), entry.name, entry.parent))
    if bundle.frontend is not None:
        fe_name = bundle.frontend.name
        steps.append(
            Step(f"frontend {fe_name}", "delete", lambda ops, tx: ops.delete(_FRONTEND, fe_name, transaction_id=tx))
        )
    for i, entry in _ordered(SERVERS, bundle.servers, reverse=True):
        label = _numbered("server", i, len(bundle.servers), entry.name)
        steps.append(_delete_step(SERVERS, label, entry.name, entry.parent))
    if bundle.backend is not None:
        be_name = bundle.backend.name
        steps.append(
            Step(f"backend {be_name}", "delete", lambda ops, tx: ops.delete(_BACKEND, be_name, transaction_id=tx))
        )
    return steps


_ABSENT_PHRASES = ("missing object", "does not exist", "not found")


def is_absent(exc: BaseException) -> bool:
    """True when the API says the object is already gone.

    "transaction <id> does not exist" also contains "does not exist" but means
    the transaction went stale, so anything retryable is never treated as absent.
    """
    if not isinstance(exc, APIError) or is_retryable(exc):
        return False
    if exc.status_code == 404:
        return True
    text = f"{exc.message} {exc.body}".lower()
    return any(phrase in text for phrase in _ABSENT_PHRASES)


def execute(ops: ResourceOperations, transaction_id: str, steps: list[Step]) -> None:
    """Run ``steps`` in order inside ``transaction_id``; the first failure aborts."""
    total = len(steps)
    for n, step in enumerate(steps, 1):
        logger.debug("[%d/%d] %s %s in transaction %s", n, total, step.action, step.label, transaction_id)
        try:
            step.run(ops, transaction_id)
        except Exception as exc:
            if step.ignore_absent and is_absent(exc):
                logger.warning("%s already absent, skipping %s: %s", step.label, step.action, exc)
                continue
            raise ResourceOperationError(f"{step.label} {step.action}", exc) from exc


# ----------------------------------------------------------------------
# Read-back
# ----------------------------------------------------------------------


@dataclass
class BundleSnapshot:
    """What the API currently holds for the objects a bundle names."""

    backend: Backend | None = None
    servers: list[Server] = field(default_factory=list)
    frontend: Frontend | None = None
    binds: list[Bind] = field(default_factory=list)
    acls: list[ACL] = field(default_factory=list)
    # "http_request_rules", "tcp_checks", ... -> live rules under the bundle's parents
    rules: dict[str, list[Rule]] = field(default_factory=dict)

    def missing(self, bundle: ResourceBundle) -> list[str]:
        """Labels of bundle objects the API does not have."""
        gone: list[str] = []
        if bundle.backend is not None and self.backend is None:
            gone.append(f"backend {bundle.backend.name}")
        server_names = {s.name for s in self.servers}
        gone.extend(f"server {e.name}" for e in bundle.servers if e.name not in server_names)
        if bundle.frontend is not None and self.frontend is None:
            gone.append(f"frontend {bundle.frontend.name}")
        bind_names = {b.name for b in self.binds}
        gone.extend(f"bind {e.name}" for e in bundle.binds if e.name not in bind_names)
        acl_names = {a.acl_name for a in self.acls}
        gone.extend(f"ACL {e.name}" for e in bundle.acls if e.name not in acl_names)
        for section in RULE_SECTIONS:
            live = {(r.index, r.type) for r in self.rules.get(section.attr, [])}
            gone.extend(
                f"{section.label} {e.rule.index} ({e.name})"
                for e in section.entries(bundle)
                if (e.rule.index, e.rule.type) not in live
            )
        return gone


def _unique_parents(entries: Iterable[Any]) -> list[Parent]:
    seen: dict[Parent, None] = {}
    for entry in entries:
        seen.setdefault(entry.parent, None)
    return list(seen)


def read_bundle(ops: ResourceOperations, bundle: ResourceBundle) -> BundleSnapshot:
    snapshot = BundleSnapshot()
    if bundle.backend is not None:
        data = ops.get(_BACKEND, bundle.backend.name)
        snapshot.backend = Backend.model_validate(data) if data else None
    wanted_servers = {e.name for e in bundle.servers}
    for parent in _unique_parents(bundle.servers):
        snapshot.servers.extend(
            Server.model_validate(s) for s in ops.list(SERVERS.kind, parent) if s.get("name") in wanted_servers
        )
    if bundle.frontend is not None:
        data = ops.get(_FRONTEND, bundle.frontend.name)
        snapshot.frontend = Frontend.model_validate(data) if data else None
    wanted_binds = {e.name for e in bundle.binds}
    for parent in _unique_parents(bundle.binds):
        snapshot.binds.extend(
            Bind.model_validate(b) for b in ops.list(BINDS.kind, parent) if b.get("name") in wanted_binds
        )
    for parent in _unique_parents(bundle.acls):
        snapshot.acls.extend(ACL.model_validate(a) for a in ops.list(ACLS.kind, parent))
    for section in RULE_SECTIONS:
        for parent in _unique_parents(section.entries(bundle)):
            snapshot.rules.setdefault(section.attr, []).extend(
                Rule.model_validate(r) for r in ops.list(section.kind, parent)
            )
    return snapshot
