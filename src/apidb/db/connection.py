"""SQLite connection layer for the index and the cache ledger."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from apidb.errors import NotFound


class Database:
    """A single SQLite file (``index.sqlite`` or ``state.sqlite``)."""

    def __init__(
        self,
        db_path: Path | str,
        read_only: bool = False,
        journal_mode: str = "WAL",
    ) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file.
            read_only: Open with ``mode=ro``; a missing file raises NotFound
                instead of being created.
            journal_mode: Journal mode for writable connections. The index is
                published by rename, so it is built with ``DELETE`` to avoid
                leaving -wal/-shm sidecars behind.
        """
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.journal_mode = journal_mode
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection and return it."""
        if self.read_only:
            if not self.db_path.exists():
                raise NotFound(
                    f"No index found at '{self.db_path}'. Run: apidb sync"
                )
            conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
        else:
            conn = sqlite3.connect(self.db_path)
            conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
            conn.execute("PRAGMA synchronous = NORMAL")
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None
