"""apidb show / op / schema: print a single doc.

  apidb show <doc-id>               by exact id
  apidb op <METHOD> <path>          by (method, path) across enabled sources
  apidb schema <name>               by schema name across enabled sources

op and schema accept --source to pick one source when several define the
same operation or schema.
"""

from __future__ import annotations

import json
from typing import Annotated

import typer

from apidb.cli.common import JsonOption, RootOption, exit_on_error, resolve_workspace
from apidb.db.models import Doc, OperationPayload, SchemaPayload
from apidb.query import get_doc_by_id, resolve_operation_doc_id, resolve_schema_doc_id

SourceOption = Annotated[
    str | None,
    typer.Option("--source", help="Source id (required when several sources match)."),
]


def show_cmd(
    doc_id: Annotated[str, typer.Argument(help="Doc id, e.g. op:petstore:GET:/pets")],
    root: RootOption = None,
    as_json: JsonOption = False,
) -> None:
    """Show a document by id."""
    ws = resolve_workspace(root)
    with exit_on_error():
        doc = get_doc_by_id(ws, doc_id)
    if as_json:
        typer.echo(json.dumps(doc.to_dict(), indent=2))
    else:
        typer.echo(render_doc(doc))


def op_cmd(
    method: Annotated[str, typer.Argument(help="HTTP method, e.g. GET.")],
    path: Annotated[str, typer.Argument(help="Path template, e.g. /pets/{petId}.")],
    source: SourceOption = None,
    root: RootOption = None,
    as_json: JsonOption = False,
) -> None:
    """Show an operation by method and path."""
    ws = resolve_workspace(root)
    with exit_on_error():
        doc_id = resolve_operation_doc_id(ws, method, path, source_id=source)
        doc = get_doc_by_id(ws, doc_id)
    _emit(doc_id, doc, as_json)


def schema_cmd(
    name: Annotated[str, typer.Argument(help="Schema name under components.schemas.")],
    source: SourceOption = None,
    root: RootOption = None,
    as_json: JsonOption = False,
) -> None:
    """Show a schema by name."""
    ws = resolve_workspace(root)
    with exit_on_error():
        doc_id = resolve_schema_doc_id(ws, name, source_id=source)
        doc = get_doc_by_id(ws, doc_id)
    _emit(doc_id, doc, as_json)


def render_doc(doc: Doc) -> str:
    """Short plain-text rendering: heading line plus summary fields."""
    payload = doc.payload
    if isinstance(payload, OperationPayload):
        lines = [f"{payload.method} {payload.path}"]
        if payload.summary:
            lines.append(f"Summary: {payload.summary}")
        if payload.operation_id:
            lines.append(f"OperationId: {payload.operation_id}")
        if payload.tags:
            lines.append(f"Tags: {', '.join(payload.tags)}")
        if payload.description:
            lines.append(f"Description: {payload.description}")
        return "\n".join(lines)

    return _render_schema(payload)


def _render_schema(payload: SchemaPayload) -> str:
    lines = [f"Schema {payload.name}"]
    if payload.description:
        lines.append(f"Description: {payload.description}")
    if payload.type is not None:
        lines.append(f"Type: {payload.type}")
    properties = (payload.summary or {}).get("properties") or []
    for prop in properties:
        prop_type = prop.get("type") or prop.get("$ref") or "?"
        lines.append(f"  {prop['name']}: {prop_type}")
    return "\n".join(lines)


def _emit(doc_id: str, doc: Doc, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps({"docId": doc_id, "doc": doc.to_dict()}, indent=2))
    else:
        typer.echo(render_doc(doc))
