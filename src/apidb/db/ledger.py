"""Persistent cache ledger (``state.sqlite``): HTTP validators + blob rows.

Unlike the index, the ledger survives every sync. It answers two questions:
which validators to send on the next conditional request, and which blob
holds the bytes to replay when the server answers 304.

Retention: only the newest blob per source is kept. Older rows are deleted
right after each successful fetch; a blob file is removed only when no row
from any source still references its hash.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from apidb.db.connection import Database
from apidb.db.migrations import run_migrations
from apidb.db.models import Blob, HttpCacheEntry
from apidb.fetch.blobs import BlobStore

logger = logging.getLogger(__name__)

_BLOB_COLUMNS = (
    "sha256, source_id, fetched_at, kind, location, effective_url, "
    "content_type, bytes_length, blob_path"
)


class CacheLedger:
    """Typed access to the cache ledger tables.

    Args:
        conn: Open connection to ``state.sqlite`` with migrations applied.
        blobs: Blob store whose files the ledger owns.
    """

    def __init__(self, conn: sqlite3.Connection, blobs: BlobStore) -> None:
        self._conn = conn
        self.blobs = blobs

    @classmethod
    def open(cls, state_path: Path, blobs: BlobStore) -> CacheLedger:
        """Open (or create) the ledger at *state_path* and migrate it."""
        state_path.parent.mkdir(parents=True, exist_ok=True)
        conn = Database(state_path).connect()
        run_migrations(conn)
        return cls(conn, blobs)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # HTTP cache validators
    # ------------------------------------------------------------------

    def get_http_cache(self, source_id: str) -> HttpCacheEntry | None:
        row = self._conn.execute(
            """
            SELECT source_id, location, effective_url, etag, last_modified,
                   last_checked_at, last_fetched_at, last_error
            FROM source_http_cache WHERE source_id = ?
            """,
            (source_id,),
        ).fetchone()
        if row is None:
            return None
        return HttpCacheEntry(
            source_id=row["source_id"],
            location=row["location"],
            effective_url=row["effective_url"],
            etag=row["etag"],
            last_modified=row["last_modified"],
            last_checked_at=row["last_checked_at"],
            last_fetched_at=row["last_fetched_at"],
            last_error=row["last_error"],
        )

    def upsert_http_cache(self, entry: HttpCacheEntry) -> None:
        """Insert or replace the validator row for ``entry.source_id``."""
        self._conn.execute(
            """
            INSERT INTO source_http_cache (
                source_id, location, effective_url, etag, last_modified,
                last_checked_at, last_fetched_at, last_error
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(source_id) DO UPDATE SET
                location = excluded.location,
                effective_url = excluded.effective_url,
                etag = excluded.etag,
                last_modified = excluded.last_modified,
                last_checked_at = excluded.last_checked_at,
                last_fetched_at = excluded.last_fetched_at,
                last_error = excluded.last_error
            """,
            (
                entry.source_id,
                entry.location,
                entry.effective_url,
                entry.etag,
                entry.last_modified,
                entry.last_checked_at,
                entry.last_fetched_at,
                entry.last_error,
            ),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Blob rows
    # ------------------------------------------------------------------

    def insert_blob(self, blob: Blob) -> None:
        """Insert or replace the row keyed by ``(source_id, sha256)``."""
        self._conn.execute(
            f"INSERT OR REPLACE INTO source_blobs ({_BLOB_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                blob.sha256,
                blob.source_id,
                blob.fetched_at,
                blob.kind,
                blob.location,
                blob.effective_url,
                blob.content_type,
                blob.bytes_length,
                blob.blob_path,
            ),
        )
        self._conn.commit()

    def latest_blob(self, source_id: str) -> Blob | None:
        """Most recently fetched blob row for *source_id*, or None."""
        row = self._conn.execute(
            f"""
            SELECT {_BLOB_COLUMNS} FROM source_blobs
            WHERE source_id = ?
            ORDER BY fetched_at DESC, rowid DESC
            LIMIT 1
            """,
            (source_id,),
        ).fetchone()
        return _row_to_blob(row) if row else None

    def list_blobs(self, source_id: str | None = None) -> list[Blob]:
        if source_id is None:
            rows = self._conn.execute(
                f"SELECT {_BLOB_COLUMNS} FROM source_blobs ORDER BY source_id, fetched_at"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_BLOB_COLUMNS} FROM source_blobs WHERE source_id = ? "
                "ORDER BY fetched_at",
                (source_id,),
            ).fetchall()
        return [_row_to_blob(r) for r in rows]

    def prune_blobs(self, source_id: str) -> list[str]:
        """Keep only the latest blob row for *source_id*.

        Every older row of the source is deleted. Its file is deleted too,
        unless another source still has a row for the same hash.

        Returns:
            Hashes whose rows were removed for this source.
        """
        latest = self.latest_blob(source_id)
        if latest is None:
            return []

        stale = [
            r["sha256"]
            for r in self._conn.execute(
                "SELECT sha256 FROM source_blobs WHERE source_id = ? AND sha256 != ?",
                (source_id, latest.sha256),
            ).fetchall()
        ]

        for sha in stale:
            self._conn.execute(
                "DELETE FROM source_blobs WHERE source_id = ? AND sha256 = ?",
                (source_id, sha),
            )
            self._conn.commit()
            if self._hash_referenced(sha):
                logger.debug("kept shared blob %s (still referenced)", sha)
                continue
            self.blobs.delete(sha)
            logger.info("pruned blob %s for source %s", sha, source_id)

        return stale

    def _hash_referenced(self, sha256: str) -> bool:
        return (
            self._conn.execute(
                "SELECT 1 FROM source_blobs WHERE sha256 = ? LIMIT 1", (sha256,)
            ).fetchone()
            is not None
        )


def _row_to_blob(row: sqlite3.Row) -> Blob:
    return Blob(
        sha256=row["sha256"],
        source_id=row["source_id"],
        fetched_at=row["fetched_at"],
        kind=row["kind"],
        location=row["location"],
        effective_url=row["effective_url"],
        content_type=row["content_type"],
        bytes_length=row["bytes_length"],
        blob_path=row["blob_path"],
    )
