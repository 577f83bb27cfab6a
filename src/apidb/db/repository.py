"""Repository for all index database operations.

Single interface for: sources, per-source status, docs, FTS5 search, and
exact (method, path) / schema-name lookups. The connection is owned by the
caller and must be closed after use.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterable

from apidb.db.models import (
    KIND_OPERATION,
    Doc,
    DocKind,
    OperationPayload,
    SchemaPayload,
    SearchHit,
    Source,
    SourceStatus,
)

# Highlight markers wrapped around matched terms in search snippets.
SNIPPET_OPEN = "**"
SNIPPET_CLOSE = "**"
SNIPPET_ELLIPSIS = "…"
SNIPPET_TOKENS = 12

_FTS_TOKEN_RE = re.compile(r"\w+\*?")

_DOC_COLUMNS = "id, source_id, kind, title, method, path, schema_name, json, body"


class IndexRepository:
    """Data access layer for the published (or in-construction) index."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection. For writes the schema must have
                been created with apidb.db.schema.initialize_index.
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Sources + status
    # ------------------------------------------------------------------

    def add_source(self, source: Source) -> None:
        self._conn.execute(
            """
            INSERT INTO sources (id, type, location, enabled, added_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (source.id, source.type, source.location, int(source.enabled), source.added_at),
        )
        self._conn.commit()

    def list_sources(self) -> list[Source]:
        """Return all sources ordered by id."""
        rows = self._conn.execute(
            "SELECT id, type, location, enabled, added_at FROM sources ORDER BY id"
        ).fetchall()
        return [
            Source(
                id=r["id"],
                type=r["type"],
                location=r["location"],
                enabled=bool(r["enabled"]),
                added_at=r["added_at"],
            )
            for r in rows
        ]

    def put_status(self, status: SourceStatus) -> None:
        """Insert or fully replace the status row for ``status.source_id``."""
        self._conn.execute(
            """
            INSERT INTO source_status (
                source_id, last_fetched_at, last_ok_at, last_error,
                doc_count_operations, doc_count_schemas
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(source_id) DO UPDATE SET
                last_fetched_at = excluded.last_fetched_at,
                last_ok_at = excluded.last_ok_at,
                last_error = excluded.last_error,
                doc_count_operations = excluded.doc_count_operations,
                doc_count_schemas = excluded.doc_count_schemas
            """,
            (
                status.source_id,
                status.last_fetched_at,
                status.last_ok_at,
                status.last_error,
                status.doc_count_operations,
                status.doc_count_schemas,
            ),
        )
        self._conn.commit()

    def list_statuses(self) -> dict[str, SourceStatus]:
        """Return ``{source_id: SourceStatus}`` for every status row."""
        rows = self._conn.execute(
            """
            SELECT source_id, last_fetched_at, last_ok_at, last_error,
                   doc_count_operations, doc_count_schemas
            FROM source_status
            """
        ).fetchall()
        return {
            r["source_id"]: SourceStatus(
                source_id=r["source_id"],
                last_fetched_at=r["last_fetched_at"],
                last_ok_at=r["last_ok_at"],
                last_error=r["last_error"],
                doc_count_operations=r["doc_count_operations"],
                doc_count_schemas=r["doc_count_schemas"],
            )
            for r in rows
        }

    # ------------------------------------------------------------------
    # Docs
    # ------------------------------------------------------------------

    def insert_docs(self, docs: Iterable[Doc]) -> int:
        """Insert docs + their FTS5 rows in one transaction.

        Either every doc and its full-text row is committed, or nothing is:
        any failure (e.g. a duplicate id) rolls the whole batch back and
        re-raises.

        Returns:
            Number of docs inserted.
        """
        count = 0
        with self._conn:
            for doc in docs:
                cur = self._conn.execute(
                    f"INSERT INTO docs ({_DOC_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        doc.id,
                        doc.source_id,
                        doc.kind,
                        doc.title,
                        doc.method,
                        doc.path,
                        doc.schema_name,
                        doc.payload_json,
                        doc.body,
                    ),
                )
                # Keep FTS5 in sync with explicit rowid mapping
                self._conn.execute(
                    "INSERT INTO docs_fts(rowid, title, body) VALUES (?, ?, ?)",
                    (cur.lastrowid, doc.title, doc.body),
                )
                count += 1
        return count

    def get_doc(self, doc_id: str) -> Doc | None:
        row = self._conn.execute(
            f"SELECT {_DOC_COLUMNS} FROM docs WHERE id = ?", (doc_id,)
        ).fetchone()
        return _row_to_doc(row) if row else None

    # ------------------------------------------------------------------
    # Exact lookups
    # ------------------------------------------------------------------

    def find_operation_matches(
        self, method: str, path: str, source_ids: list[str]
    ) -> list[tuple[str, str]]:
        """Return ``[(doc_id, source_id), ...]`` for (METHOD, path) in *source_ids*."""
        if not source_ids:
            return []
        placeholders = ",".join("?" * len(source_ids))
        rows = self._conn.execute(
            f"""
            SELECT id, source_id FROM docs
            WHERE kind = 'operation' AND method = ? AND path = ?
              AND source_id IN ({placeholders})
            ORDER BY source_id, id
            """,
            (method.upper(), path, *source_ids),
        ).fetchall()
        return [(r["id"], r["source_id"]) for r in rows]

    def find_schema_matches(
        self, schema_name: str, source_ids: list[str]
    ) -> list[tuple[str, str]]:
        """Return ``[(doc_id, source_id), ...]`` for *schema_name* in *source_ids*."""
        if not source_ids:
            return []
        placeholders = ",".join("?" * len(source_ids))
        rows = self._conn.execute(
            f"""
            SELECT id, source_id FROM docs
            WHERE kind = 'schema' AND schema_name = ?
              AND source_id IN ({placeholders})
            ORDER BY source_id, id
            """,
            (schema_name, *source_ids),
        ).fetchall()
        return [(r["id"], r["source_id"]) for r in rows]

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(
        self,
        query: str,
        kind: DocKind | None = None,
        source_id: str | None = None,
        limit: int = 10,
    ) -> list[SearchHit]:
        """BM25 full-text search, best-first.

        bm25() returns negative values; lower (more negative) = better match.
        Equal scores prefer operations over schemas.
        """
        fts_query = to_fts_query(query)
        if not fts_query:
            return []

        where = ["docs_fts MATCH ?"]
        params: list[object] = [fts_query]
        if kind is not None:
            where.append("d.kind = ?")
            params.append(kind)
        if source_id is not None:
            where.append("d.source_id = ?")
            params.append(source_id)
        params.append(limit)

        rows = self._conn.execute(
            f"""
            SELECT
                d.id, d.kind, d.title, d.source_id,
                snippet(docs_fts, 1, ?, ?, ?, {SNIPPET_TOKENS}) AS snippet,
                bm25(docs_fts) AS score
            FROM docs_fts
            JOIN docs d ON d.rowid = docs_fts.rowid
            WHERE {" AND ".join(where)}
            ORDER BY
                score ASC,
                CASE WHEN d.kind = '{KIND_OPERATION}' THEN 0 ELSE 1 END ASC
            LIMIT ?
            """,
            (SNIPPET_OPEN, SNIPPET_CLOSE, SNIPPET_ELLIPSIS, *params),
        ).fetchall()
        return [
            SearchHit(
                id=r["id"],
                kind=r["kind"],
                title=r["title"],
                source_id=r["source_id"],
                snippet=r["snippet"] or "",
                score=float(r["score"]),
            )
            for r in rows
        ]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def to_fts_query(query: str) -> str:
    """Turn free text into a safe FTS5 MATCH expression.

    FTS5 rejects punctuation such as ``/``, ``{`` or ``,`` as syntax errors,
    so every word is quoted individually (implicit AND). A trailing ``*`` on
    a word is kept as a prefix match.
    """
    parts: list[str] = []
    for token in _FTS_TOKEN_RE.findall(query):
        if token.endswith("*"):
            parts.append(f'"{token[:-1]}"*')
        else:
            parts.append(f'"{token}"')
    return " ".join(parts)


def _row_to_doc(row: sqlite3.Row) -> Doc:
    data = json.loads(row["json"])
    payload: OperationPayload | SchemaPayload
    if row["kind"] == KIND_OPERATION:
        payload = OperationPayload.from_json(data)
    else:
        payload = SchemaPayload.from_json(data)
    return Doc(
        id=row["id"],
        source_id=row["source_id"],
        kind=row["kind"],
        title=row["title"],
        payload=payload,
        body=row["body"],
    )
