"""Read-only access to the published index."""

from apidb.query.docs import SourceListing, get_doc_by_id, list_sources
from apidb.query.exact import resolve_operation_doc_id, resolve_schema_doc_id
from apidb.query.search import SearchResult, search_docs

__all__ = [
    "SearchResult",
    "SourceListing",
    "get_doc_by_id",
    "list_sources",
    "resolve_operation_doc_id",
    "resolve_schema_doc_id",
    "search_docs",
]
