"""Retry orchestration for whole-bundle operations.

Concurrent writers (parallel pipelines, several workspaces) race on the
shared HAProxy configuration version. The API reports the race through a
handful of distinct error shapes; :func:`classify_error` is the one place
that recognises them. :class:`RetryOrchestrator` runs begin -> work ->
commit, and on a retryable failure rolls back, waits a fixed delay and
starts over with a brand-new transaction.

Attempt lifecycle::

    ATTEMPTING --ok--------------------------> SUCCEEDED
        |--fatal--------------------------> FAILED_FATAL (raise original error)
        '--retryable--> FAILED_RETRYABLE --attempt < max--> ATTEMPTING
                               '--attempt == max--> RETRIES_EXHAUSTED
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from dataplane.errors import (
    APIError,
    OperationCancelledError,
    ResourceOperationError,
    RetriesExhaustedError,
    TransactionClosedError,
)
from dataplane.transaction import Transaction, TransactionManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_RETRY_DELAY = 2.0


class ErrorClass(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryRule:
    """A stale-state signal: matches when every phrase of any alternative is present."""

    name: str
    alternatives: tuple[tuple[str, ...], ...]

    def matches(self, text: str) -> bool:
        return any(all(phrase in text for phrase in phrases) for phrases in self.alternatives)


RETRYABLE_RULES: tuple[RetryRule, ...] = (
    # 406 "transaction <id> is outdated and cannot be committed"
    RetryRule("transaction outdated", (("transaction outdated",), ("transaction", "is outdated"))),
    # 404 "transaction <id> does not exist" once a concurrent commit has dropped it
    RetryRule("transaction does not exist", (("transaction does not exist",), ("transaction", "does not exist"))),
    # 409 on begin/commit when another writer bumped the version first
    RetryRule("version mismatch", (("version mismatch",),)),
    RetryRule("version or transaction not specified", (("version or transaction not specified",),)),
    # Seen while a concurrent commit rewrites the defaults section. Suspicious,
    # but kept because real pipelines depend on it.
    RetryRule("transient validation error", (("validation error", "defaults section"),)),
)

# Never retried, whatever their message says
FATAL_KINDS: tuple[type[BaseException], ...] = (OperationCancelledError, TransactionClosedError)


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if isinstance(current, ResourceOperationError):
            current = current.cause
        elif isinstance(current, RetriesExhaustedError):
            current = current.last_error
        else:
            current = current.__cause__


def _error_text(exc: BaseException) -> str:
    parts = [str(exc)]
    if isinstance(exc, APIError):
        parts.extend([exc.message, exc.body])
    return " ".join(parts).lower()


def matched_rule(exc: BaseException) -> RetryRule | None:
    """Return the rule that makes ``exc`` retryable, or None when it is fatal."""
    chain = list(_error_chain(exc))
    if any(isinstance(e, FATAL_KINDS) for e in chain):
        return None
    for e in chain:
        text = _error_text(e)
        for rule in RETRYABLE_RULES:
            if rule.matches(text):
                return rule
    return None


def classify_error(exc: BaseException) -> ErrorClass:
    return ErrorClass.RETRYABLE if matched_rule(exc) is not None else ErrorClass.FATAL


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorClass.RETRYABLE


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: float = DEFAULT_RETRY_DELAY

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_FATAL = "failed_fatal"
    RETRIES_EXHAUSTED = "retries_exhausted"


@dataclass
class AttemptRecord:
    number: int
    state: AttemptState = AttemptState.ATTEMPTING
    transaction_id: str | None = None
    error: str = ""
    rolled_back: bool = False


@dataclass
class BundleResult:
    """History of one bundle operation, one record per attempt."""

    operation: str
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].state is AttemptState.SUCCEEDED

    @property
    def transaction_id(self) -> str | None:
        """Id of the committed transaction."""
        return self.attempts[-1].transaction_id if self.succeeded else None

    @property
    def transaction_ids(self) -> list[str]:
        return [a.transaction_id for a in self.attempts if a.transaction_id]


class RetryOrchestrator:
    def __init__(
        self,
        transactions: TransactionManager,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._transactions = transactions
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def run(
        self,
        operation: str,
        work: Callable[[Transaction], None],
        cancel: threading.Event | None = None,
    ) -> BundleResult:
        """Run ``work`` in a transaction until it commits, fails fatally, or runs out of attempts."""
        result = BundleResult(operation)
        max_attempts = self.policy.max_attempts

        for number in range(1, max_attempts + 1):
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError(operation, number - 1)

            record = AttemptRecord(number)
            result.attempts.append(record)
            logger.info("%s: attempt %d/%d", operation, number, max_attempts)

            txn: Transaction | None = None
            try:
                txn = self._transactions.begin()
                record.transaction_id = txn.id
                work(txn)
                self._transactions.commit(txn)
            except Exception as exc:
                record.error = str(exc)
                if txn is not None:
                    record.rolled_back = self._transactions.rollback_quietly(txn)

                rule = matched_rule(exc)
                if rule is None:
                    record.state = AttemptState.FAILED_FATAL
                    logger.error("%s: attempt %d failed (non-retryable): %s", operation, number, exc)
                    raise

                if number == max_attempts:
                    record.state = AttemptState.RETRIES_EXHAUSTED
                    logger.error("%s: giving up after %d attempts: %s", operation, number, exc)
                    raise RetriesExhaustedError(operation, number, exc) from exc

                record.state = AttemptState.FAILED_RETRYABLE
                logger.warning(
                    "%s: attempt %d hit %s, retrying in %.1fs", operation, number, rule.name, self.policy.delay
                )
                self._wait(operation, number, cancel)
                continue
            except BaseException:
                # KeyboardInterrupt, SystemExit: release the transaction, never classify
                if txn is not None:
                    record.rolled_back = self._transactions.rollback_quietly(txn)
                record.state = AttemptState.FAILED_FATAL
                logger.warning("%s: attempt %d interrupted", operation, number)
                raise

            record.state = AttemptState.SUCCEEDED
            logger.info("%s: committed transaction %s after %d attempt(s)", operation, txn.id, number)
            return result

        raise AssertionError("unreachable")  # pragma: no cover

    def _wait(self, operation: str, attempts: int, cancel: threading.Event | None) -> None:
        if cancel is None:
            self._sleep(self.policy.delay)
            return
        if cancel.wait(self.policy.delay):
            raise OperationCancelledError(operation, attempts)
