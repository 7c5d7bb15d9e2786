"""Delete a resource bundle in reverse dependency order."""

from __future__ import annotations

from typing import Annotated

import typer
from dataplane.bundle import ResourceBundle
from rich.console import Console

from dataplane_cli.commands.apply_cmd import print_result
from dataplane_cli.utils import build_client, bundle_path, handle_error

console = Console()


def destroy(
    ctx: typer.Context,
    bundle_file: Annotated[str, typer.Argument(help="Path to the bundle YAML or JSON")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")] = False,
) -> None:
    """Delete every object in a bundle. ACLs and rules that are already gone are skipped."""
    try:
        bundle = ResourceBundle.from_file(bundle_path(bundle_file))
        if not yes and not typer.confirm(f"Delete bundle {bundle.label!r}?"):
            console.print("Aborted.")
            raise typer.Exit(1)
        client = build_client(ctx)
        with console.status(f"Deleting {bundle.label}..."):
            result = client.delete_bundle(bundle)
        print_result(ctx, result)
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
