"""Exception hierarchy for the Data Plane client.

Lower layers raise these untouched; only the retry orchestrator decides
whether a failure is worth another attempt.
"""

from __future__ import annotations

from typing import Any


class DataplaneError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(DataplaneError):
    """Missing or invalid client configuration."""


class TransportError(DataplaneError):
    """The API could not be reached (DNS, TLS, connection reset, timeout)."""


class ResponseDecodeError(DataplaneError):
    """A 2xx body did not match the shape expected for the configured API version."""


class APIError(DataplaneError):
    """Non-2xx response from the Data Plane API.

    ``code`` and ``message`` come from the structured ``{"code", "message"}``
    body HAProxy returns on failure; ``body`` keeps the raw text for
    anything that did not parse.
    """

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        code: int | None = None,
        body: str = "",
        method: str = "",
        path: str = "",
    ):
        self.status_code = status_code
        self.message = message or body
        self.code = code if code is not None else status_code
        self.body = body
        self.method = method
        self.path = path
        super().__init__(str(self))

    def __str__(self) -> str:
        where = f" on {self.method} {self.path}" if self.method else ""
        return f"API error {self.code} (HTTP {self.status_code}){where}: {self.message}"

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class TransactionClosedError(DataplaneError):
    """Commit or rollback was attempted on a transaction that already ended."""

    def __init__(self, transaction_id: str, state: str):
        self.transaction_id = transaction_id
        self.state = state
        super().__init__(f"transaction {transaction_id} is already {state}")


class ResourceOperationError(DataplaneError):
    """One step of a bundle failed. The original error is chained as ``__cause__``."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"{step} failed: {cause}")


class RetriesExhaustedError(DataplaneError):
    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


class OperationCancelledError(DataplaneError):
    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} cancelled after {attempts} attempt(s)")


def error_details(exc: BaseException) -> dict[str, Any]:
    """Flatten an error into a JSON-friendly dict for ``--json`` output."""
    details: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, APIError):
        details.update(status_code=exc.status_code, code=exc.code, api_message=exc.message)
    if isinstance(exc, RetriesExhaustedError):
        details["attempts"] = exc.attempts
    if isinstance(exc, ResourceOperationError):
        details["step"] = exc.step
    return details
