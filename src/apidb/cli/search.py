"""apidb search: ranked full-text search over operations and schemas."""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated

import typer

from apidb.cli.common import JsonOption, RootOption, exit_on_error, resolve_workspace
from apidb.query import search_docs
from apidb.query.search import DEFAULT_LIMIT, MAX_LIMIT


class KindChoice(str, Enum):
    any = "any"
    operation = "operation"
    schema = "schema"


def search_cmd(
    query: Annotated[str, typer.Argument(help="Words to search for (prefix with word*).")],
    kind: Annotated[
        KindChoice,
        typer.Option("--kind", help="Restrict results to one doc kind."),
    ] = KindChoice.any,
    source: Annotated[
        str | None,
        typer.Option("--source", help="Restrict results to one source id."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", help=f"Maximum results (clamped to 1..{MAX_LIMIT})."),
    ] = DEFAULT_LIMIT,
    root: RootOption = None,
    as_json: JsonOption = False,
) -> None:
    """Search indexed docs, best match first."""
    ws = resolve_workspace(root)
    with exit_on_error():
        result = search_docs(ws, query, kind=kind.value, source_id=source, limit=limit)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    for hit in result.results:
        typer.echo(f"{hit.id}\t{hit.kind}\t{hit.title}\t{hit.source_id}")
