"""List configuration objects of any kind."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from dataplane.resources import KINDS, Parent
from rich.console import Console
from rich.table import Table

from dataplane_cli.utils import build_client, handle_error

console = Console()


def list_entities(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help=f"Entity kind: {', '.join(sorted(KINDS))}")],
    parent_type: Annotated[
        str | None, typer.Option("--parent-type", help="Parent type (frontend, backend, resolver, peers)")
    ] = None,
    parent_name: Annotated[str | None, typer.Option("--parent-name", "-p", help="Parent name")] = None,
) -> None:
    """List every object of KIND, optionally under one parent."""
    try:
        if parent_name and not parent_type:
            raise ValueError("--parent-name needs --parent-type")
        parent = Parent(parent_type, parent_name) if parent_type and parent_name else None

        client = build_client(ctx)
        items = client.list(kind, parent)

        if ctx.obj and ctx.obj.get("json"):
            print(json.dumps(items))
            return

        if not items:
            console.print(f"No {kind} objects found.")
            return

        columns: list[str] = []
        for item in items:
            for key in item:
                if key not in columns and not isinstance(item[key], (dict, list)):
                    columns.append(key)

        table = Table(title=f"{kind} ({len(items)})")
        for col in columns:
            table.add_column(col, style="cyan" if col in ("name", "acl_name", "index") else None)
        for item in items:
            table.add_row(*(str(item.get(col, "")) for col in columns))
        console.print(table)
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
