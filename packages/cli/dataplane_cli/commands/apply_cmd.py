"""Create or update a resource bundle inside one retried transaction."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from dataplane.bundle import ResourceBundle
from dataplane.retry import BundleResult
from rich.console import Console
from rich.table import Table

from dataplane_cli.utils import build_client, bundle_path, handle_error, result_to_dict

console = Console()


def print_result(ctx: typer.Context, result: BundleResult) -> None:
    """Render a bundle result as JSON or as an attempts table."""
    if ctx.obj and ctx.obj.get("json"):
        print(json.dumps(result_to_dict(result)))
        return

    if result.attempt_count > 1:
        table = Table(title="Attempts")
        table.add_column("#", justify="right")
        table.add_column("Transaction", style="cyan")
        table.add_column("Outcome")
        table.add_column("Error", style="dim")
        for attempt in result.attempts:
            table.add_row(
                str(attempt.number),
                attempt.transaction_id or "-",
                attempt.state.value,
                attempt.error,
            )
        console.print(table)

    console.print(
        f"[green]{result.operation}[/green] committed in transaction "
        f"[cyan]{result.transaction_id}[/cyan] ({result.attempt_count} attempt(s))"
    )


def apply(
    ctx: typer.Context,
    bundle_file: Annotated[str, typer.Argument(help="Path to the bundle YAML or JSON")],
) -> None:
    """Create every object in a bundle (backend, servers, frontend, binds, ACLs, rules, checks)."""
    try:
        bundle = ResourceBundle.from_file(bundle_path(bundle_file))
        client = build_client(ctx)
        with console.status(f"Creating {bundle.label}..."):
            result = client.create_bundle(bundle)
        print_result(ctx, result)
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)


def update(
    ctx: typer.Context,
    bundle_file: Annotated[str, typer.Argument(help="Path to the bundle YAML or JSON")],
) -> None:
    """Bring a bundle's objects in line with the file: replace, add and remove children."""
    try:
        bundle = ResourceBundle.from_file(bundle_path(bundle_file))
        client = build_client(ctx)
        with console.status(f"Updating {bundle.label}..."):
            result = client.update_bundle(bundle)
        print_result(ctx, result)
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
