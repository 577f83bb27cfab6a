"""Ranked full-text search over the published index."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from apidb.db.connection import Database
from apidb.db.models import KIND_OPERATION, KIND_SCHEMA, SearchHit
from apidb.db.repository import IndexRepository
from apidb.errors import InvalidArgument
from apidb.workspace import WorkspaceHandle

KIND_ANY = "any"
SEARCH_KINDS = (KIND_ANY, KIND_OPERATION, KIND_SCHEMA)
DEFAULT_LIMIT = 10
MAX_LIMIT = 50


@dataclass
class SearchResult:
    query: str
    results: list[SearchHit] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "results": [h.to_dict() for h in self.results]}


def clamp_limit(limit: int | None) -> int:
    """Clamp *limit* into [1, MAX_LIMIT]; None means DEFAULT_LIMIT."""
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, int(limit)))


def search_docs(
    ws: WorkspaceHandle,
    query: str,
    kind: str = KIND_ANY,
    source_id: str | None = None,
    limit: int | None = DEFAULT_LIMIT,
) -> SearchResult:
    """Search titles and bodies, best match first.

    Equal relevance prefers operations over schemas. A query with no word
    characters returns no results rather than an FTS syntax error.

    Raises:
        InvalidArgument: *kind* is not ``any``, ``operation`` or ``schema``.
        NotFound: The index has not been built yet.
    """
    if kind not in SEARCH_KINDS:
        raise InvalidArgument(
            f"Invalid kind: {kind!r} (expected one of {', '.join(SEARCH_KINDS)})"
        )
    with Database(ws.index_path, read_only=True) as conn:
        hits = IndexRepository(conn).search_fts(
            query,
            kind=None if kind == KIND_ANY else kind,
            source_id=source_id,
            limit=clamp_limit(limit),
        )
    return SearchResult(query=query, results=hits)
