"""apidb root / apidb init: workspace selection and scaffolding."""

from __future__ import annotations

from typing import Annotated

import typer

from apidb.cli.common import RootOption, console, exit_on_error, resolve_workspace
from apidb.config import init_config
from apidb.workspace import find_workspace_root


def root_cmd(
    root: RootOption = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Also print why this root was selected."),
    ] = False,
) -> None:
    """Print the selected workspace root."""
    selected, reason = find_workspace_root(root_flag=root)
    typer.echo(str(selected))
    if verbose:
        typer.echo(reason)


def init_cmd(root: RootOption = None) -> None:
    """Create .apidb/config.json in the workspace root."""
    ws = resolve_workspace(root)
    with exit_on_error():
        created = init_config(ws)
    if created:
        console.print(f"[green]✓[/] Initialized {ws.config_path}", soft_wrap=True)
    else:
        console.print(f"[dim]Already initialized:[/] {ws.config_path}", soft_wrap=True)
