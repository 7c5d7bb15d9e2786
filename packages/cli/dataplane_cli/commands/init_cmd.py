"""Create a .dataplane/ project directory with a config skeleton."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console

from dataplane_cli.project import PROJECT_DIR, config_path
from dataplane_cli.utils import handle_error

console = Console()


def init(
    ctx: typer.Context,
    url: Annotated[str, typer.Option("--url", help="Data Plane API base URL")] = "http://localhost:5555",
    username: Annotated[str, typer.Option("--username", "-u", help="API username")] = "admin",
    api_version: Annotated[str, typer.Option("--api-version", help="API version (v2 or v3)")] = "v3",
    directory: Annotated[str, typer.Option("--dir", "-d", help="Project directory")] = ".",
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite an existing config")] = False,
) -> None:
    """Write .dataplane/config.yaml. The password is left to DATAPLANE_PASSWORD."""
    try:
        root = Path(directory)
        path = config_path(root)
        if path.exists() and not force:
            console.print(f"[red]Error:[/red] {path} already exists. Use --force to overwrite.")
            raise typer.Exit(1)

        (root / PROJECT_DIR).mkdir(parents=True, exist_ok=True)
        config = {
            "url": url,
            "username": username,
            "api_version": api_version,
            "insecure": False,
            "timeout": 30,
            "max_attempts": 10,
            "retry_delay": 2.0,
        }
        path.write_text(yaml.dump(config, default_flow_style=False, sort_keys=False))
        console.print(f"[green]Created[/green] {path}")
        console.print("[dim]Set DATAPLANE_PASSWORD (or pass --password) before running commands.[/dim]")
    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
