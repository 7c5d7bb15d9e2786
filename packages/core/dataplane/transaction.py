"""Server-side transactions: begin, commit, rollback.

The Data Plane API stages every configuration edit inside a transaction
opened against a configuration version. Committing applies the staged edits
atomically; deleting the transaction discards them. HAProxy has no separate
rollback endpoint, so rollback is ``DELETE /transactions/{id}``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from dataplane.errors import DataplaneError, ResponseDecodeError, TransactionClosedError
from dataplane.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSACTIONS_PATH = "/services/haproxy/transactions"
VERSION_PATH = "/services/haproxy/configuration/version"


class TransactionState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled back"


@dataclass
class Transaction:
    id: str
    version: int | None = None
    status: str = ""
    state: TransactionState = TransactionState.OPEN

    @property
    def is_open(self) -> bool:
        return self.state is TransactionState.OPEN

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise TransactionClosedError(self.id, self.state.value)


def _parse_version(payload: object) -> int:
    # Some API builds answer with a bare integer, others with {"version": N}
    if isinstance(payload, dict):
        payload = payload.get("version", payload.get("_version"))
    if isinstance(payload, bool):
        raise ResponseDecodeError(f"unexpected configuration version: {payload!r}")
    try:
        return int(payload)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ResponseDecodeError(f"unexpected configuration version: {payload!r}") from exc


class TransactionManager:
    def __init__(self, transport: Transport):
        self._transport = transport

    def configuration_version(self) -> int:
        return _parse_version(self._transport.request("GET", VERSION_PATH).json())

    def begin(self) -> Transaction:
        version = self.configuration_version()
        data = self._transport.request("POST", TRANSACTIONS_PATH, params={"version": version}).json()
        if not isinstance(data, dict) or not data.get("id"):
            raise ResponseDecodeError(f"transaction response without an id: {data!r}")
        txn = Transaction(id=str(data["id"]), version=data.get("_version", version), status=data.get("status", ""))
        logger.info("Transaction %s started at configuration version %s", txn.id, txn.version)
        return txn

    def commit(self, txn: Transaction) -> None:
        txn._ensure_open()
        self._transport.request("PUT", f"{TRANSACTIONS_PATH}/{txn.id}")
        txn.state = TransactionState.COMMITTED
        logger.info("Transaction %s committed", txn.id)

    def rollback(self, txn: Transaction) -> None:
        txn._ensure_open()
        self._transport.request("DELETE", f"{TRANSACTIONS_PATH}/{txn.id}")
        txn.state = TransactionState.ROLLED_BACK
        logger.info("Transaction %s rolled back", txn.id)

    def rollback_quietly(self, txn: Transaction) -> bool:
        """Best-effort rollback used while another error is propagating.

        A failure here is logged and swallowed; the caller's error is the one
        worth reporting. Returns True when the rollback went through.
        """
        if not txn.is_open:
            return False
        try:
            self.rollback(txn)
        except DataplaneError as exc:
            logger.warning("Failed to roll back transaction %s: %s", txn.id, exc)
            return False
        return True

    def run(self, work: Callable[[Transaction], T]) -> T:
        """Run ``work`` inside a fresh transaction; commit on success, roll back on failure."""
        with self.transaction() as txn:
            return work(txn)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        txn = self.begin()
        try:
            yield txn
            self.commit(txn)
        except BaseException:
            logger.debug("Transaction %s failed, rolling back", txn.id)
            self.rollback_quietly(txn)
            raise
