"""Print the current HAProxy configuration version."""

from __future__ import annotations

import json

import typer
from rich.console import Console

from dataplane_cli.utils import build_client, handle_error

console = Console()


def version(ctx: typer.Context) -> None:
    """Show the configuration version new transactions would start from."""
    try:
        client = build_client(ctx)
        current = client.configuration_version()
        if ctx.obj and ctx.obj.get("json"):
            print(json.dumps({"api_version": client.api_version, "configuration_version": current}))
            return
        console.print(f"Configuration version [cyan]{current}[/cyan] (API {client.api_version})")
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
