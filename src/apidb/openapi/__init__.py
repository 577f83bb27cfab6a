"""OpenAPI reduction: raw bytes → validated document → flat list of Docs."""

from __future__ import annotations

from apidb.db.models import Doc
from apidb.openapi.normalize import DocLimits, normalize_openapi_to_docs
from apidb.openapi.parse import parse_openapi_bytes

__all__ = ["DocLimits", "normalize_openapi_to_docs", "parse_openapi_bytes", "reduce_to_docs"]


def reduce_to_docs(data: bytes, source_id: str, filename: str = "spec") -> list[Doc]:
    """Parse *data* and reduce it to the Docs of *source_id*.

    Raises:
        ParseError: Propagated verbatim from parse_openapi_bytes().
    """
    spec = parse_openapi_bytes(data, filename=filename)
    return normalize_openapi_to_docs(source_id, spec)
