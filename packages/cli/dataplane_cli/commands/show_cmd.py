"""Read back the objects a bundle names and report which exist."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from dataplane.bundle import ResourceBundle
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dataplane_cli.utils import build_client, bundle_path, handle_error

console = Console()


def show(
    ctx: typer.Context,
    bundle_file: Annotated[str, typer.Argument(help="Path to the bundle YAML or JSON")],
) -> None:
    """Show the live state of a bundle's objects."""
    try:
        bundle = ResourceBundle.from_file(bundle_path(bundle_file))
        client = build_client(ctx)
        snapshot = client.read_bundle(bundle)
        missing = snapshot.missing(bundle)

        if ctx.obj and ctx.obj.get("json"):
            data = {
                "backend": snapshot.backend.to_api() if snapshot.backend else None,
                "servers": [s.to_api() for s in snapshot.servers],
                "frontend": snapshot.frontend.to_api() if snapshot.frontend else None,
                "binds": [b.to_api() for b in snapshot.binds],
                "acls": [a.to_api() for a in snapshot.acls],
                "rules": {section: [r.to_api() for r in rules] for section, rules in snapshot.rules.items()},
                "missing": missing,
            }
            print(json.dumps(data))
            return

        table = Table(title=f"Bundle {bundle.label}")
        table.add_column("Kind", style="cyan")
        table.add_column("Name")
        table.add_column("Detail", style="dim")
        if snapshot.backend:
            table.add_row("backend", snapshot.backend.name, snapshot.backend.mode or "")
        for s in snapshot.servers:
            table.add_row("server", s.name, f"{s.address}:{s.port}" if s.port else s.address)
        if snapshot.frontend:
            table.add_row("frontend", snapshot.frontend.name, snapshot.frontend.default_backend or "")
        for b in snapshot.binds:
            table.add_row("bind", b.name, f"{b.address or '*'}:{b.port}" if b.port else b.address or "")
        for a in snapshot.acls:
            table.add_row("acl", a.acl_name, f"[{a.index}] {a.criterion} {a.value}".strip())
        for section, rules in snapshot.rules.items():
            for r in rules:
                table.add_row(section.removesuffix("s").replace("_", "-"), f"[{r.index}]", r.type or "")
        console.print(table)

        if missing:
            console.print(
                Panel("\n".join(missing), title=f"[yellow]Missing ({len(missing)})[/yellow]", border_style="yellow")
            )
        else:
            console.print("[green]All bundle objects are present.[/green]")
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
