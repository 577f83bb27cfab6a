"""Domain models for the apidb index and cache ledger."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union

DocKind = Literal["operation", "schema"]
OriginKind = Literal["url", "file"]

KIND_OPERATION: DocKind = "operation"
KIND_SCHEMA: DocKind = "schema"


def utc_now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (sorts lexicographically)."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


# ------------------------------------------------------------------
# Document ids
# ------------------------------------------------------------------


def op_doc_id(source_id: str, method: str, path: str) -> str:
    """``op:<sourceId>:<METHOD>:<path>`` with the method uppercased."""
    return f"op:{source_id}:{method.upper()}:{path}"


def schema_doc_id(source_id: str, schema_name: str) -> str:
    """``schema:<sourceId>:<schemaName>``."""
    return f"schema:{source_id}:{schema_name}"


# ------------------------------------------------------------------
# Sources
# ------------------------------------------------------------------


@dataclass
class Source:
    id: str
    type: str
    location: str
    enabled: bool
    added_at: str


@dataclass
class SourceStatus:
    """Outcome of the most recent sync for one source."""

    source_id: str
    last_fetched_at: str | None = None
    last_ok_at: str | None = None
    last_error: str | None = None
    doc_count_operations: int = 0
    doc_count_schemas: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "lastFetchedAt": self.last_fetched_at,
            "lastOkAt": self.last_ok_at,
            "lastError": self.last_error,
            "docCountOperations": self.doc_count_operations,
            "docCountSchemas": self.doc_count_schemas,
        }


# ------------------------------------------------------------------
# Docs: tagged union of operation / schema payloads
# ------------------------------------------------------------------


@dataclass
class OperationPayload:
    method: str
    path: str
    operation_id: str | None = None
    summary: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "path": self.path,
            "operationId": self.operation_id,
            "summary": self.summary,
            "description": self.description,
            "tags": list(self.tags),
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> OperationPayload:
        return cls(
            method=data["method"],
            path=data["path"],
            operation_id=data.get("operationId"),
            summary=data.get("summary"),
            description=data.get("description"),
            tags=list(data.get("tags") or []),
        )


@dataclass
class SchemaPayload:
    name: str
    type: Any = None  # string, or a list of strings in OpenAPI 3.1
    description: str | None = None
    summary: dict[str, Any] | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "summary": self.summary,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> SchemaPayload:
        return cls(
            name=data["name"],
            type=data.get("type"),
            description=data.get("description"),
            summary=data.get("summary"),
        )


DocPayload = Union[OperationPayload, SchemaPayload]


@dataclass
class Doc:
    """One indexed unit. ``kind`` is stored explicitly alongside the payload."""

    id: str
    source_id: str
    kind: DocKind
    title: str
    payload: DocPayload
    body: str

    @property
    def method(self) -> str | None:
        return self.payload.method if isinstance(self.payload, OperationPayload) else None

    @property
    def path(self) -> str | None:
        return self.payload.path if isinstance(self.payload, OperationPayload) else None

    @property
    def schema_name(self) -> str | None:
        return self.payload.name if isinstance(self.payload, SchemaPayload) else None

    @property
    def payload_json(self) -> str:
        return json.dumps(self.payload.to_json(), default=str)

    @classmethod
    def operation(
        cls, source_id: str, payload: OperationPayload, title: str, body: str
    ) -> Doc:
        return cls(
            id=op_doc_id(source_id, payload.method, payload.path),
            source_id=source_id,
            kind=KIND_OPERATION,
            title=title,
            payload=payload,
            body=body,
        )

    @classmethod
    def schema(cls, source_id: str, payload: SchemaPayload, body: str) -> Doc:
        return cls(
            id=schema_doc_id(source_id, payload.name),
            source_id=source_id,
            kind=KIND_SCHEMA,
            title=payload.name,
            payload=payload,
            body=body,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "kind": self.kind,
            "title": self.title,
            "method": self.method,
            "path": self.path,
            "schemaName": self.schema_name,
            "json": self.payload.to_json(),
            "body": self.body,
        }


# ------------------------------------------------------------------
# Cache ledger rows
# ------------------------------------------------------------------


@dataclass
class Blob:
    sha256: str
    source_id: str
    fetched_at: str
    kind: OriginKind
    location: str
    bytes_length: int
    blob_path: str
    effective_url: str | None = None
    content_type: str | None = None


@dataclass
class HttpCacheEntry:
    source_id: str
    location: str
    effective_url: str | None = None
    etag: str | None = None
    last_modified: str | None = None
    last_checked_at: str | None = None
    last_fetched_at: str | None = None
    last_error: str | None = None


@dataclass
class SearchHit:
    id: str
    kind: DocKind
    title: str
    source_id: str
    snippet: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "sourceId": self.source_id,
            "snippet": self.snippet,
            "score": self.score,
        }
