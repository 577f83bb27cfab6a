"""apidb list: configured sources and the outcome of their last sync."""

from __future__ import annotations

import json

import typer

from apidb.cli.common import JsonOption, RootOption, exit_on_error, resolve_workspace
from apidb.query import SourceListing, list_sources


def list_cmd(root: RootOption = None, as_json: JsonOption = False) -> None:
    """List sources with enabled flag, location and sync status."""
    ws = resolve_workspace(root)
    with exit_on_error():
        sources = list_sources(ws)

    if as_json:
        typer.echo(json.dumps({"sources": [s.to_dict() for s in sources]}, indent=2))
        return

    for s in sources:
        state = "enabled" if s.enabled else "disabled"
        typer.echo(f"{s.id}\t{state}\t{s.location}\t{_status_text(s)}")


def _status_text(source: SourceListing) -> str:
    status = source.status
    if status is None:
        return "never synced"
    if status.last_error is not None:
        return f"error: {status.last_error}"
    return (
        f"ok ({status.doc_count_operations} operations, "
        f"{status.doc_count_schemas} schemas)"
    )
