"""Dataplane: transactional client for the HAProxy Data Plane API."""

from dataplane.config import DataplaneConfig
from dataplane.errors import (
    APIError,
    ConfigError,
    DataplaneError,
    OperationCancelledError,
    ResourceOperationError,
    RetriesExhaustedError,
    TransactionClosedError,
    TransportError,
)
from dataplane.models import ACL, Backend, Bind, Frontend, Rule, Server

__version__ = "0.1.0"

__all__ = [
    "ACL",
    "APIError",
    "Backend",
    "Bind",
    "BundleResult",
    "ConfigError",
    "DataplaneClient",
    "DataplaneConfig",
    "DataplaneError",
    "ErrorClass",
    "Frontend",
    "OperationCancelledError",
    "ResourceBundle",
    "ResourceOperationError",
    "RetriesExhaustedError",
    "RetryPolicy",
    "Rule",
    "Server",
    "TransactionClosedError",
    "TransportError",
    "classify_error",
]


def __getattr__(name: str):
    # Lazy imports so importing the models doesn't pull in the HTTP stack
    if name == "DataplaneClient":
        from dataplane.client import DataplaneClient

        return DataplaneClient
    if name == "ResourceBundle":
        from dataplane.bundle import ResourceBundle

        return ResourceBundle
    if name in ("BundleResult", "ErrorClass", "RetryPolicy", "classify_error"):
        from dataplane import retry

        return getattr(retry, name)
    raise AttributeError(f"module 'dataplane' has no attribute {name!r}")
