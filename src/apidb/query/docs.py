"""Document retrieval and source listing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from apidb.config import load_config
from apidb.db.connection import Database
from apidb.db.models import Doc, SourceStatus
from apidb.db.repository import IndexRepository
from apidb.errors import NotFound
from apidb.workspace import WorkspaceHandle


def get_doc_by_id(ws: WorkspaceHandle, doc_id: str) -> Doc:
    """Return the Doc stored under *doc_id*.

    Raises:
        NotFound: No such doc, or no index yet.
    """
    with Database(ws.index_path, read_only=True) as conn:
        doc = IndexRepository(conn).get_doc(doc_id)
    if doc is None:
        raise NotFound(f"Doc not found: {doc_id}")
    return doc


@dataclass
class SourceListing:
    """One configured source and the status recorded by the last sync."""

    id: str
    type: str
    location: str
    enabled: bool
    added_at: str | None
    status: SourceStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "location": self.location,
            "enabled": self.enabled,
            "addedAt": self.added_at,
            "status": self.status.to_dict() if self.status else None,
        }


def list_sources(ws: WorkspaceHandle) -> list[SourceListing]:
    """List every configured source, ordered by id, with its last status.

    config.json is the source of truth for which sources exist. Status rows
    come from the published index; before the first sync (or for a source
    added since) the status is None.
    """
    cfg = load_config(ws)
    statuses = _published_statuses(ws)
    return [
        SourceListing(
            id=s.id,
            type=s.type,
            location=s.location,
            enabled=s.enabled,
            added_at=s.added_at,
            status=statuses.get(s.id),
        )
        for s in sorted(cfg.sources, key=lambda s: s.id)
    ]


def _published_statuses(ws: WorkspaceHandle) -> dict[str, SourceStatus]:
    try:
        with Database(ws.index_path, read_only=True) as conn:
            return IndexRepository(conn).list_statuses()
    except NotFound:
        return {}
