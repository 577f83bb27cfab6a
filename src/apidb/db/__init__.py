"""apidb storage layer: the published index and the persistent cache ledger."""

from apidb.db.connection import Database
from apidb.db.ledger import CacheLedger
from apidb.db.migrations import MIGRATIONS, run_migrations
from apidb.db.repository import IndexRepository
from apidb.db.schema import initialize_index

__all__ = [
    "Database",
    "CacheLedger",
    "IndexRepository",
    "initialize_index",
    "run_migrations",
    "MIGRATIONS",
]
