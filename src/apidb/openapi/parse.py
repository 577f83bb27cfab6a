"""Parse raw bytes as an OpenAPI 3.x document (JSON first, then YAML).

All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import json
import re
from typing import Any

import yaml

from apidb.errors import ParseError

_OPENAPI_3_RE = re.compile(r"^3(?:\.\d+){1,2}$")


def _validate(obj: Any, filename: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ParseError(f"Not an OpenAPI document ({filename}): top-level must be an object")
    version = obj.get("openapi")
    if not isinstance(version, str) or not version.strip():
        raise ParseError(f'Not an OpenAPI document ({filename}): missing "openapi" version field')
    if not _OPENAPI_3_RE.match(version.strip()):
        raise ParseError(
            f"Unsupported OpenAPI version ({filename}): expected OpenAPI 3.x, got '{version}'"
        )
    return obj


def parse_openapi_bytes(data: bytes, filename: str = "spec") -> dict[str, Any]:
    """Decode *data* and return the validated OpenAPI mapping.

    Raises:
        ParseError: Neither JSON nor YAML, or not an OpenAPI 3.x document.
    """
    text = data.decode("utf-8", errors="replace")

    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        pass
    else:
        return _validate(obj, filename)

    try:
        obj = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ParseError(
            f"Failed to parse OpenAPI as JSON or YAML ({filename}): {_one_line(exc)}"
        ) from exc
    return _validate(obj, filename)


def _one_line(exc: Exception) -> str:
    return " ".join(str(exc).split())
