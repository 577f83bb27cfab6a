"""apidb CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from apidb import __version__
from apidb.cli.init import init_cmd, root_cmd
from apidb.cli.listing import list_cmd
from apidb.cli.search import search_cmd
from apidb.cli.show import op_cmd, schema_cmd, show_cmd
from apidb.cli.sources import add_app, disable_cmd, enable_cmd
from apidb.cli.sync import sync_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("apidb")
    except importlib.metadata.PackageNotFoundError:
        return __version__


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"apidb {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route ``apidb.*`` log records to stderr through rich."""
    logger = logging.getLogger("apidb")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            show_time=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)


app = typer.Typer(
    name="apidb",
    help=(
        "apidb: local index of OpenAPI operations and schemas.\n\n"
        "  apidb add openapi URL --id ID   Register a source and sync it.\n"
        "  apidb search QUERY              Full-text search across sources."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log per-source progress to stderr."),
    ] = False,
) -> None:
    """apidb: local index of OpenAPI operations and schemas."""
    _configure_logging(verbose)


app.command("root")(root_cmd)
app.command("init")(init_cmd)
app.add_typer(add_app, name="add")
app.command("enable")(enable_cmd)
app.command("disable")(disable_cmd)
app.command("sync")(sync_cmd)
app.command("list")(list_cmd)
app.command("search")(search_cmd)
app.command("show")(show_cmd)
app.command("op")(op_cmd)
app.command("schema")(schema_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed apidb version."""
    typer.echo(f"apidb {_installed_version()}")


if __name__ == "__main__":
    app()
