"""apidb add / enable / disable: edit the source list in config.json.

Commands:
  apidb add openapi <location> --id <id> [--no-sync]
  apidb enable <id>
  apidb disable <id>

Config edits run under the workspace lock so they cannot interleave with a
sync that is reading the same file.
"""

from __future__ import annotations

from typing import Annotated

import typer

from apidb.cli.common import RootOption, console, exit_on_error, resolve_workspace
from apidb.cli.errors import err_unknown_source
from apidb.cli.sync import run_sync
from apidb.config import (
    add_openapi_source,
    init_config,
    load_config,
    save_config,
    set_source_enabled,
)
from apidb.lock import WorkspaceLock
from apidb.workspace import WorkspaceHandle

add_app = typer.Typer(
    name="add",
    help="Add a source to the workspace.",
    add_completion=False,
)


@add_app.command("openapi")
def add_openapi_cmd(
    location: Annotated[str, typer.Argument(help="Local path or http(s) URL of the document.")],
    source_id: Annotated[str, typer.Option("--id", help="Unique source id ([a-zA-Z0-9._-]).")],
    sync: Annotated[
        bool,
        typer.Option("--sync/--no-sync", help="Sync immediately after adding."),
    ] = True,
    allow_private_net: Annotated[
        bool,
        typer.Option("--allow-private-net", help="Allow fetching private network addresses."),
    ] = False,
    root: RootOption = None,
) -> None:
    """Register an OpenAPI document as a source."""
    ws = resolve_workspace(root)
    with exit_on_error():
        with WorkspaceLock(ws):
            init_config(ws)
            cfg = add_openapi_source(load_config(ws), source_id, location)
            save_config(ws, cfg)
    console.print(f"[green]✓[/] Added source {source_id}", soft_wrap=True)

    if sync:
        run_sync(ws, allow_partial=False, allow_private_net=allow_private_net)


def enable_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id to enable.")],
    root: RootOption = None,
) -> None:
    """Enable a source (takes effect on the next sync)."""
    _set_enabled(resolve_workspace(root), source_id, True)


def disable_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id to disable.")],
    root: RootOption = None,
) -> None:
    """Disable a source: it is no longer fetched, searched or resolved."""
    _set_enabled(resolve_workspace(root), source_id, False)


def _set_enabled(ws: WorkspaceHandle, source_id: str, enabled: bool) -> None:
    with exit_on_error():
        with WorkspaceLock(ws):
            cfg = load_config(ws)
            if cfg.get_source(source_id) is None:
                console.print(
                    err_unknown_source(source_id, [s.id for s in cfg.sources]),
                    soft_wrap=True,
                )
                raise typer.Exit(1)
            save_config(ws, set_source_enabled(cfg, source_id, enabled))
    state = "enabled" if enabled else "disabled"
    console.print(f"[green]✓[/] Source {source_id} {state}. Run: apidb sync", soft_wrap=True)
