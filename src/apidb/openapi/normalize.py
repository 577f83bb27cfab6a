"""Reduce a parsed OpenAPI document to flat operation and schema Docs.

One ``operation`` Doc per (path, HTTP method), one ``schema`` Doc per
``components.schemas`` entry. Payloads are bounded: at most 20 tags per
operation, 200 summarised properties per schema, and a plain-text body of at
most 50,000 characters used for full-text ranking.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from apidb.db.models import Doc, OperationPayload, SchemaPayload

HTTP_METHODS = ("GET", "PUT", "POST", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE")
_ELLIPSIS = "…"


@dataclass(frozen=True)
class DocLimits:
    max_tags: int = 20
    max_schema_properties: int = 200
    max_body_chars: int = 50_000
    max_schema_description_chars: int = 500
    max_property_description_chars: int = 200


DEFAULT_LIMITS = DocLimits()


def truncate(value: Any, limit: int) -> str | None:
    """Stringify *value* and cap it at *limit* characters (ellipsis included)."""
    if value is None:
        return None
    text = str(value)
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(_ELLIPSIS))] + _ELLIPSIS


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def schema_summary(schema: Any, limits: DocLimits = DEFAULT_LIMITS) -> dict[str, Any] | None:
    """Shallow summary of a schema object: type, format, description, properties."""
    if not isinstance(schema, dict):
        return None
    if "$ref" in schema:
        return {"$ref": str(schema["$ref"])}

    out: dict[str, Any] = {
        "type": schema.get("type"),
        "format": schema.get("format"),
        "description": truncate(schema.get("description"), limits.max_schema_description_chars),
    }

    properties = schema.get("properties")
    if isinstance(properties, dict):
        summarised: list[dict[str, Any]] = []
        for name in list(properties)[: limits.max_schema_properties]:
            prop = properties[name]
            prop = prop if isinstance(prop, dict) else {}
            summarised.append(
                {
                    "name": str(name),
                    "type": prop.get("type"),
                    "$ref": _opt_str(prop.get("$ref")),
                    "description": truncate(
                        prop.get("description"), limits.max_property_description_chars
                    ),
                }
            )
        out["properties"] = summarised

    return out


def normalize_openapi_to_docs(
    source_id: str, spec: dict[str, Any], limits: DocLimits = DEFAULT_LIMITS
) -> list[Doc]:
    """Return the operation Docs (path order) followed by the schema Docs."""
    return [
        *_operation_docs(source_id, spec, limits),
        *_schema_docs(source_id, spec, limits),
    ]


def _operation_docs(source_id: str, spec: dict[str, Any], limits: DocLimits) -> list[Doc]:
    paths = spec.get("paths")
    if not isinstance(paths, dict):
        return []

    docs: list[Doc] = []
    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method_raw, op in path_item.items():
            method = str(method_raw).upper()
            if method not in HTTP_METHODS or not isinstance(op, dict):
                continue

            raw_tags = op.get("tags")
            all_tags = [str(t) for t in raw_tags] if isinstance(raw_tags, list) else []
            payload = OperationPayload(
                method=method,
                path=str(path),
                operation_id=_opt_str(op.get("operationId")),
                summary=_opt_str(op.get("summary")),
                description=_opt_str(op.get("description")),
                tags=all_tags[: limits.max_tags],
            )
            title = f"{method} {path}"
            body_parts = [
                title,
                payload.operation_id,
                payload.summary,
                payload.description,
                *all_tags,
            ]
            body = truncate("\n".join(p for p in body_parts if p), limits.max_body_chars)
            docs.append(Doc.operation(source_id, payload, title=title, body=body or ""))
    return docs


def _schema_docs(source_id: str, spec: dict[str, Any], limits: DocLimits) -> list[Doc]:
    components = spec.get("components")
    schemas = components.get("schemas") if isinstance(components, dict) else None
    if not isinstance(schemas, dict):
        return []

    docs: list[Doc] = []
    for name, schema in schemas.items():
        schema_obj = schema if isinstance(schema, dict) else {}
        summary = schema_summary(schema, limits)
        payload = SchemaPayload(
            name=str(name),
            type=schema_obj.get("type"),
            description=_opt_str(schema_obj.get("description")),
            summary=summary,
        )
        body_parts = [
            payload.name,
            payload.description,
            _opt_str(payload.type),
            json.dumps(summary, default=str),
        ]
        body = truncate("\n".join(p for p in body_parts if p), limits.max_body_chars)
        docs.append(Doc.schema(source_id, payload, body=body or ""))
    return docs
