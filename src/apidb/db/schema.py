"""Index database DDL and initialization.

The index is rebuilt from scratch on every sync and published by rename, so
there is no migration history: a fresh file always gets the current schema.
"""

from __future__ import annotations

import sqlite3

INDEX_SCHEMA_VERSION = 1

_CREATE_SOURCES = """
CREATE TABLE IF NOT EXISTS sources (
    id          TEXT PRIMARY KEY,
    type        TEXT NOT NULL,
    location    TEXT NOT NULL,
    enabled     INTEGER NOT NULL,
    added_at    TEXT NOT NULL
)
"""

_CREATE_SOURCE_STATUS = """
CREATE TABLE IF NOT EXISTS source_status (
    source_id               TEXT PRIMARY KEY REFERENCES sources(id),
    last_fetched_at         TEXT,
    last_ok_at              TEXT,
    last_error              TEXT,
    doc_count_operations    INTEGER NOT NULL DEFAULT 0,
    doc_count_schemas       INTEGER NOT NULL DEFAULT 0
)
"""

_CREATE_DOCS = """
CREATE TABLE IF NOT EXISTS docs (
    id          TEXT PRIMARY KEY,
    source_id   TEXT NOT NULL REFERENCES sources(id),
    kind        TEXT NOT NULL CHECK (kind IN ('operation', 'schema')),
    title       TEXT NOT NULL,
    method      TEXT,
    path        TEXT,
    schema_name TEXT,
    json        TEXT NOT NULL,
    body        TEXT NOT NULL
)
"""

_CREATE_DOCS_INDEXES = (
    "CREATE INDEX IF NOT EXISTS docs_source_kind ON docs(source_id, kind)",
    "CREATE INDEX IF NOT EXISTS docs_method_path ON docs(method, path)",
    "CREATE INDEX IF NOT EXISTS docs_schema_name ON docs(schema_name)",
)

# External-content FTS5 table: rows are inserted explicitly with
# rowid = docs.rowid by IndexRepository.insert_docs().
_CREATE_DOCS_FTS = """
CREATE VIRTUAL TABLE IF NOT EXISTS docs_fts USING fts5(
    title,
    body,
    content='docs',
    content_rowid='rowid',
    tokenize='porter unicode61'
)
"""


def initialize_index(conn: sqlite3.Connection) -> None:
    """Create all index tables (idempotent)."""
    conn.execute(_CREATE_SOURCES)
    conn.execute(_CREATE_SOURCE_STATUS)
    conn.execute(_CREATE_DOCS)
    for ddl in _CREATE_DOCS_INDEXES:
        conn.execute(ddl)
    conn.execute(_CREATE_DOCS_FTS)
    conn.execute(f"PRAGMA user_version = {INDEX_SCHEMA_VERSION}")
    conn.commit()
