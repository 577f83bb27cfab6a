"""apidb sync: rebuild the local index from every enabled source."""

from __future__ import annotations

from typing import Annotated

import typer

from apidb.cli.common import RootOption, console, exit_on_error, resolve_workspace
from apidb.cli.errors import warn_source_failed
from apidb.config import SyncSettings
from apidb.sync import sync_workspace
from apidb.workspace import WorkspaceHandle


def sync_cmd(
    allow_partial: Annotated[
        bool,
        typer.Option("--allow-partial", help="Continue with other sources when one fails."),
    ] = False,
    allow_private_net: Annotated[
        bool,
        typer.Option("--allow-private-net", help="Allow fetching private network addresses."),
    ] = False,
    max_bytes: Annotated[
        int | None,
        typer.Option("--max-bytes", min=1, help="Per-source byte ceiling (default 50 MiB)."),
    ] = None,
    root: RootOption = None,
) -> None:
    """Fetch enabled sources and publish a fresh index."""
    run_sync(
        resolve_workspace(root),
        allow_partial=allow_partial,
        allow_private_net=allow_private_net,
        max_bytes=max_bytes,
    )


def run_sync(
    ws: WorkspaceHandle,
    allow_partial: bool,
    allow_private_net: bool,
    max_bytes: int | None = None,
) -> None:
    """Run a sync and report it; flags override APIDB_* environment settings."""
    with exit_on_error():
        settings = SyncSettings.from_env()
        if max_bytes is not None:
            settings.max_spec_bytes = max_bytes
        if allow_private_net:
            settings.allow_private_net = True
        result = sync_workspace(ws, strict=not allow_partial, settings=settings)

    for status in result.statuses:
        if status.last_error is not None:
            console.print(warn_source_failed(status), soft_wrap=True)
        else:
            console.print(
                f"  [green]✓[/] {status.source_id}: "
                f"{status.doc_count_operations} operations, "
                f"{status.doc_count_schemas} schemas",
                soft_wrap=True,
            )
    console.print(
        f"[bold green]Sync OK[/] ({result.docs_inserted} docs from "
        f"{result.sources_processed - len(result.failed)}/{result.sources_processed} sources)",
        soft_wrap=True,
    )
