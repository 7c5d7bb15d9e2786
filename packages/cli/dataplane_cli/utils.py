from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer
from dataplane.client import DataplaneClient
from dataplane.config import DataplaneConfig
from dataplane.errors import APIError, ConfigError, RetriesExhaustedError, error_details
from dataplane.retry import BundleResult
from rich.console import Console
from rich.logging import RichHandler

from dataplane_cli.project import load_project_config

_err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_err_console, rich_tracebacks=True, show_path=False)],
    )


def handle_error(ctx: typer.Context, e: Exception) -> None:
    """Print a clean error message and exit 1."""
    import pydantic
    import yaml

    verbose = ctx.obj.get("verbose", False) if ctx.obj else False
    json_mode = ctx.obj.get("json", False) if ctx.obj else False

    if isinstance(e, FileNotFoundError):
        msg = f"File not found: {e}"
    elif isinstance(e, yaml.YAMLError):
        msg = f"Invalid YAML: {e}"
    elif isinstance(e, pydantic.ValidationError):
        msg = f"Invalid bundle: {e}"
    elif isinstance(e, ConfigError):
        msg = str(e)
    elif isinstance(e, RetriesExhaustedError):
        msg = f"{e.operation} gave up after {e.attempts} attempts. Last error: {e.last_error}"
    elif isinstance(e, APIError):
        msg = f"Data Plane API rejected {e.method} {e.path} (HTTP {e.status_code}): {e.message}"
    elif isinstance(e, ValueError):
        msg = str(e)
    else:
        msg = f"Error: {e}"

    if json_mode:
        print(json.dumps({"error": msg, "details": error_details(e)}))
    else:
        _err_console.print(f"[red]Error:[/red] {msg}")

    if verbose:
        _err_console.print_exception()

    raise typer.Exit(1)


def build_config(ctx: typer.Context) -> DataplaneConfig:
    """Resolve settings: command-line flags > DATAPLANE_* env > .dataplane/config.yaml."""
    obj = ctx.obj or {}
    overrides = {
        "url": obj.get("url"),
        "username": obj.get("username"),
        "password": obj.get("password"),
        "api_version": obj.get("api_version"),
        "insecure": obj.get("insecure") or None,
    }
    return DataplaneConfig.from_sources(load_project_config(), **overrides)


def build_client(ctx: typer.Context) -> DataplaneClient:
    return DataplaneClient(build_config(ctx))


def result_to_dict(result: BundleResult) -> dict[str, Any]:
    return {
        "operation": result.operation,
        "succeeded": result.succeeded,
        "transaction_id": result.transaction_id,
        "attempts": [
            {
                "number": a.number,
                "state": a.state.value,
                "transaction_id": a.transaction_id,
                "error": a.error,
                "rolled_back": a.rolled_back,
            }
            for a in result.attempts
        ],
    }


def bundle_path(path: str) -> Path:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)
    return p
