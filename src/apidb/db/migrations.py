"""Forward-only migration runner for the cache ledger (``state.sqlite``).

The ledger persists across syncs, so its schema evolves in place. The index
is rebuilt every sync and is not migration-managed (see schema.py).
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS source_http_cache (
    source_id       TEXT PRIMARY KEY,
    location        TEXT NOT NULL,
    effective_url   TEXT,
    etag            TEXT,
    last_modified   TEXT,
    last_checked_at TEXT,
    last_fetched_at TEXT,
    last_error      TEXT
);

CREATE TABLE IF NOT EXISTS source_blobs (
    sha256          TEXT NOT NULL,
    source_id       TEXT NOT NULL,
    fetched_at      TEXT NOT NULL,
    kind            TEXT NOT NULL CHECK (kind IN ('url', 'file')),
    location        TEXT NOT NULL,
    effective_url   TEXT,
    content_type    TEXT,
    bytes_length    INTEGER NOT NULL,
    blob_path       TEXT NOT NULL,
    PRIMARY KEY (source_id, sha256)
);

CREATE INDEX IF NOT EXISTS source_blobs_by_source_time
    ON source_blobs(source_id, fetched_at DESC);

CREATE INDEX IF NOT EXISTS source_blobs_by_hash ON source_blobs(sha256);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> list[int]:
    """Bring the ledger schema up to date.

    Idempotent: safe to call on a ledger at any version.

    Returns:
        The versions applied by this call (empty if already current).
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = current_version(conn)
    applied: list[int] = []
    for version, sql in MIGRATIONS:
        if version <= current:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
        conn.commit()
        applied.append(version)
        logger.debug("state ledger migrated to v%d", version)
    return applied


def current_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration version, 0 for a fresh ledger."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0
