"""Exact resolution of (METHOD, path) and schema names to doc ids.

With an explicit source id the id is computed directly and the index is never
touched. Without one, the lookup is scoped to the sources currently enabled
in config.json and must match exactly one of them.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from apidb.config import load_config
from apidb.db.connection import Database
from apidb.db.models import op_doc_id, schema_doc_id
from apidb.db.repository import IndexRepository
from apidb.errors import Ambiguous, InvalidArgument, NotFound
from apidb.openapi.normalize import HTTP_METHODS
from apidb.workspace import WorkspaceHandle

_SOURCE_ID_RE = re.compile(r"^[a-zA-Z0-9._-]+$")


def resolve_operation_doc_id(
    ws: WorkspaceHandle | None,
    method: str,
    path: str,
    source_id: str | None = None,
) -> str:
    """Return the doc id of the operation ``METHOD path``.

    Args:
        ws: Workspace to search. May be None when *source_id* is given.
        method: HTTP method, any case.
        path: OpenAPI path template, e.g. ``/pets/{petId}``.
        source_id: Restrict to this source; makes resolution pure.

    Raises:
        InvalidArgument: Unknown method, empty path, or malformed source id.
        NotFound: No enabled source defines the operation (or no index yet).
        Ambiguous: More than one enabled source defines it.
    """
    method_upper = _check_method(method)
    if not path:
        raise InvalidArgument("Operation path must not be empty")
    if source_id is not None:
        return op_doc_id(_check_source_id(source_id), method_upper, path)

    ws = _require_workspace(ws)
    enabled = _enabled_source_ids(ws)
    matches = _query(ws, lambda repo: repo.find_operation_matches(method_upper, path, enabled))
    return _single_match(
        matches,
        not_found=(
            f"Operation not found for {method_upper} {path} in enabled sources "
            f"({', '.join(enabled)}). Check the method/path or pass --source <id>."
        ),
        ambiguous_prefix=f"Ambiguous operation for {method_upper} {path}",
    )


def resolve_schema_doc_id(
    ws: WorkspaceHandle | None,
    schema_name: str,
    source_id: str | None = None,
) -> str:
    """Return the doc id of the schema *schema_name*; see resolve_operation_doc_id()."""
    if not schema_name:
        raise InvalidArgument("Schema name must not be empty")
    if source_id is not None:
        return schema_doc_id(_check_source_id(source_id), schema_name)

    ws = _require_workspace(ws)
    enabled = _enabled_source_ids(ws)
    matches = _query(ws, lambda repo: repo.find_schema_matches(schema_name, enabled))
    return _single_match(
        matches,
        not_found=(
            f"Schema not found: {schema_name} in enabled sources "
            f"({', '.join(enabled)}). Check the schema name or pass --source <id>."
        ),
        ambiguous_prefix=f"Ambiguous schema: {schema_name}",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_method(method: str) -> str:
    upper = method.upper()
    if upper not in HTTP_METHODS:
        raise InvalidArgument(
            f"Unsupported HTTP method: {method!r} (expected one of {', '.join(HTTP_METHODS)})"
        )
    return upper


def _check_source_id(source_id: str) -> str:
    if not _SOURCE_ID_RE.match(source_id):
        raise InvalidArgument(f"Invalid source id: {source_id!r}")
    return source_id


def _require_workspace(ws: WorkspaceHandle | None) -> WorkspaceHandle:
    if ws is None:
        raise InvalidArgument("A workspace is required when --source is omitted")
    return ws


def _enabled_source_ids(ws: WorkspaceHandle) -> list[str]:
    ids = [s.id for s in load_config(ws).enabled_sources]
    if not ids:
        raise NotFound(
            "No enabled sources found. Enable at least one source in .apidb/config.json."
        )
    return ids


def _query(
    ws: WorkspaceHandle,
    fn: Callable[[IndexRepository], list[tuple[str, str]]],
) -> list[tuple[str, str]]:
    with Database(ws.index_path, read_only=True) as conn:
        return fn(IndexRepository(conn))


def _single_match(
    matches: list[tuple[str, str]], not_found: str, ambiguous_prefix: str
) -> str:
    if len(matches) == 1:
        return matches[0][0]
    if not matches:
        raise NotFound(not_found)
    candidates = sorted({source for _, source in matches})
    raise Ambiguous(
        f"{ambiguous_prefix}: found in multiple enabled sources ({', '.join(candidates)}). "
        "Re-run with --source <id> to disambiguate.",
        candidates=candidates,
    )
