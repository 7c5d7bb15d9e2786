"""DataplaneClient: one explicit value wiring transport, transactions and retries."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from dataplane.bundle import (
    BundleSnapshot,
    ResourceBundle,
    Step,
    create_plan,
    delete_plan,
    execute,
    read_bundle,
    read_existing,
    update_plan,
)
from dataplane.config import DataplaneConfig
from dataplane.resources import Parent, ResourceOperations, get_kind
from dataplane.retry import BundleResult, RetryOrchestrator, RetryPolicy
from dataplane.transaction import Transaction, TransactionManager
from dataplane.transport import Transport

logger = logging.getLogger(__name__)


class DataplaneClient:
    """Client for one HAProxy Data Plane API endpoint.

    Bundle operations run inside a transaction and are retried as a whole
    (new transaction each attempt) when another writer wins the race on the
    configuration version.
    """

    def __init__(
        self,
        config: DataplaneConfig,
        transport: Transport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.transport = transport or Transport(config)
        self.transactions = TransactionManager(self.transport)
        self.resources = ResourceOperations(self.transport)
        self.policy = RetryPolicy(max_attempts=config.max_attempts, delay=config.retry_delay)
        self._orchestrator = RetryOrchestrator(self.transactions, self.policy, sleep=sleep)

    @property
    def api_version(self) -> str:
        return self.transport.api_version

    def configuration_version(self) -> int:
        return self.transactions.configuration_version()

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    def create_bundle(self, bundle: ResourceBundle, cancel: threading.Event | None = None) -> BundleResult:
        steps = create_plan(bundle)
        return self._run_plan(f"create bundle {bundle.label!r}", lambda txn_id: steps, cancel)

    def update_bundle(self, bundle: ResourceBundle, cancel: threading.Event | None = None) -> BundleResult:
        """Replace the bundle's objects, creating or deleting children so the API matches the bundle.

        Current children are read inside each attempt's transaction, so a retry
        plans against whatever the competing writer left behind.
        """

        def plan(txn_id: str) -> list[Step]:
            return update_plan(bundle, read_existing(self.resources, bundle, txn_id))

        return self._run_plan(f"update bundle {bundle.label!r}", plan, cancel)

    def delete_bundle(self, bundle: ResourceBundle, cancel: threading.Event | None = None) -> BundleResult:
        steps = delete_plan(bundle)
        return self._run_plan(f"delete bundle {bundle.label!r}", lambda txn_id: steps, cancel)

    def read_bundle(self, bundle: ResourceBundle) -> BundleSnapshot:
        return read_bundle(self.resources, bundle)

    def _run_plan(
        self,
        operation: str,
        plan: Callable[[str], list[Step]],
        cancel: threading.Event | None,
    ) -> BundleResult:
        def work(txn: Transaction) -> None:
            steps = plan(txn.id)
            logger.info("%s: %d step(s) in transaction %s", operation, len(steps), txn.id)
            execute(self.resources, txn.id, steps)

        return self._orchestrator.run(operation, work, cancel)

    # ------------------------------------------------------------------
    # Single entities
    # ------------------------------------------------------------------

    def list(self, kind: str, parent: Parent | None = None) -> list[dict[str, Any]]:
        return self.resources.list(get_kind(kind), parent)

    def get(self, kind: str, key: Any = None, parent: Parent | None = None) -> dict[str, Any] | None:
        return self.resources.get(get_kind(kind), key, parent)
