from typing import Annotated

import typer

from dataplane_cli import __version__
from dataplane_cli.commands.apply_cmd import apply, update
from dataplane_cli.commands.destroy_cmd import destroy
from dataplane_cli.commands.init_cmd import init
from dataplane_cli.commands.list_cmd import list_entities
from dataplane_cli.commands.show_cmd import show
from dataplane_cli.commands.version_cmd import version
from dataplane_cli.utils import setup_logging


def _version_callback(value: bool) -> None:
    if value:
        print(f"dataplane {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="dataplane",
    help="Transactional client for the HAProxy Data Plane API",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version", callback=_version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    url: Annotated[str | None, typer.Option("--url", help="Data Plane API base URL")] = None,
    username: Annotated[str | None, typer.Option("--username", "-u", help="API username")] = None,
    password: Annotated[str | None, typer.Option("--password", help="API password")] = None,
    api_version: Annotated[str | None, typer.Option("--api-version", help="API version (v2 or v3)")] = None,
    insecure: Annotated[bool, typer.Option("--insecure", help="Skip TLS certificate verification")] = False,
) -> None:
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["json"] = json_output
    ctx.obj["url"] = url
    ctx.obj["username"] = username
    ctx.obj["password"] = password
    ctx.obj["api_version"] = api_version
    ctx.obj["insecure"] = insecure
    setup_logging(verbose)


app.command()(apply)
app.command()(update)
app.command()(destroy)
app.command()(show)
app.command(name="list")(list_entities)
app.command()(version)
app.command()(init)
