"""apidb workspace configuration (``.apidb/config.json``).

Priority for sync knobs (high → low):
  1. CLI flags              (handled at call site, not in this module)
  2. Environment variables  (APIDB_MAX_SPEC_BYTES, APIDB_ALLOW_PRIVATE_NET)
  3. Hardcoded defaults

The source list itself only lives in config.json. The file is JSON so that
``addedAt`` timestamps and ids survive round-trips byte-for-byte; every read
and write goes through validate_config().
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, replace
from typing import Any

from apidb.db.models import utc_now_iso
from apidb.errors import ConfigError
from apidb.workspace import WorkspaceHandle

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONFIG_VERSION = 1
SOURCE_TYPE_OPENAPI = "openapi"
DEFAULT_MAX_SPEC_BYTES = 50 * 1024 * 1024  # 50 MiB

_SOURCE_ID_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z0-9._-]+$")
_TRUTHY = frozenset(["1", "true", "yes", "on"])

__all__ = [
    "ApidbConfig",
    "ConfigError",
    "SourceCfg",
    "SyncSettings",
    "add_openapi_source",
    "init_config",
    "load_config",
    "save_config",
    "set_source_enabled",
    "validate_config",
]


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceCfg:
    """A configured origin of one OpenAPI document (config.json: sources[]).

    Attributes:
        id: Unique id, restricted to ``[a-zA-Z0-9._-]``.
        location: Local file path or http(s) URL.
        type: Source kind; only ``openapi`` exists today.
        enabled: Disabled sources are listed but never fetched or searched.
        added_at: ISO-8601 timestamp of when the source was added. Older
            configs may lack it; sync stamps the current time in that case.
    """

    id: str
    location: str
    type: str = SOURCE_TYPE_OPENAPI
    enabled: bool = True
    added_at: str | None = None


@dataclass
class ApidbConfig:
    """Root configuration object, built by load_config()."""

    version: int = CONFIG_VERSION
    sources: list[SourceCfg] = field(default_factory=list)

    @property
    def enabled_sources(self) -> list[SourceCfg]:
        return [s for s in self.sources if s.enabled]

    def get_source(self, source_id: str) -> SourceCfg | None:
        for s in self.sources:
            if s.id == source_id:
                return s
        return None


@dataclass
class SyncSettings:
    """Runtime knobs for a sync (byte ceiling, private-network access)."""

    max_spec_bytes: int = DEFAULT_MAX_SPEC_BYTES
    allow_private_net: bool = False

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SyncSettings:
        """Build settings from APIDB_* environment variables over the defaults."""
        env = os.environ if environ is None else environ
        settings = cls()
        if raw := env.get("APIDB_MAX_SPEC_BYTES"):
            try:
                settings.max_spec_bytes = int(raw)
            except ValueError as exc:
                raise ConfigError(
                    f"APIDB_MAX_SPEC_BYTES must be an integer byte count, got '{raw}'"
                ) from exc
            if settings.max_spec_bytes < 1:
                raise ConfigError("APIDB_MAX_SPEC_BYTES must be >= 1")
        if raw := env.get("APIDB_ALLOW_PRIVATE_NET"):
            settings.allow_private_net = raw.strip().lower() in _TRUTHY
        return settings


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def validate_config(data: Any) -> None:
    """Raise ConfigError unless *data* is a well-formed raw config dict."""
    if not isinstance(data, dict):
        raise ConfigError("Invalid config: not an object")
    if data.get("version") != CONFIG_VERSION:
        raise ConfigError(f"Invalid config: version must be {CONFIG_VERSION}")
    sources = data.get("sources")
    if not isinstance(sources, list):
        raise ConfigError("Invalid config: sources must be an array")

    seen: set[str] = set()
    for s in sources:
        if not isinstance(s, dict):
            raise ConfigError("Invalid source: not an object")
        sid = s.get("id")
        if not isinstance(sid, str) or not _SOURCE_ID_RE.match(sid):
            raise ConfigError(
                f"Invalid source id: {sid!r} (allowed characters: letters, digits, '.', '_', '-')"
            )
        if sid in seen:
            raise ConfigError(f"Duplicate source id: {sid}")
        seen.add(sid)

        if s.get("type") != SOURCE_TYPE_OPENAPI:
            raise ConfigError(f"Invalid source type for {sid}: {s.get('type')!r}")
        location = s.get("location")
        if not isinstance(location, str) or not location:
            raise ConfigError(f"Invalid location for {sid}")
        if not isinstance(s.get("enabled"), bool):
            raise ConfigError(f"Invalid enabled for {sid}: must be true or false")
        added_at = s.get("addedAt")
        if added_at is not None and not isinstance(added_at, str):
            raise ConfigError(f"Invalid addedAt for {sid}: must be a string")


def _cfg_from_dict(data: dict[str, Any]) -> ApidbConfig:
    return ApidbConfig(
        version=data["version"],
        sources=[
            SourceCfg(
                id=s["id"],
                type=s["type"],
                location=s["location"],
                enabled=s["enabled"],
                added_at=s.get("addedAt"),
            )
            for s in data["sources"]
        ],
    )


def _cfg_to_dict(cfg: ApidbConfig) -> dict[str, Any]:
    sources: list[dict[str, Any]] = []
    for s in cfg.sources:
        raw: dict[str, Any] = {
            "id": s.id,
            "type": s.type,
            "location": s.location,
            "enabled": s.enabled,
        }
        if s.added_at is not None:
            raw["addedAt"] = s.added_at
        sources.append(raw)
    return {"version": cfg.version, "sources": sources}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_config(ws: WorkspaceHandle) -> bool:
    """Create an empty config.json if none exists.

    Returns:
        True if a new file was written, False if one was already present.
    """
    ws.ensure_dir()
    if ws.config_path.exists():
        return False
    save_config(ws, ApidbConfig())
    return True


def load_config(ws: WorkspaceHandle) -> ApidbConfig:
    """Load and validate ``.apidb/config.json``.

    Raises:
        ConfigError: If the file is missing, not JSON, or fails validation.
    """
    try:
        raw_text = ws.config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(
            f"No config found at '{ws.config_path}'. Run: apidb init"
        ) from exc
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid config: {ws.config_path} is not valid JSON ({exc})") from exc
    validate_config(data)
    return _cfg_from_dict(data)


def save_config(ws: WorkspaceHandle, cfg: ApidbConfig) -> None:
    """Validate *cfg* and write it as pretty-printed JSON."""
    data = _cfg_to_dict(cfg)
    validate_config(data)
    ws.ensure_dir()
    ws.config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def add_openapi_source(
    cfg: ApidbConfig, source_id: str, location: str, enabled: bool = True
) -> ApidbConfig:
    """Return a copy of *cfg* with a new openapi source appended.

    Raises:
        ConfigError: If the id is invalid or already taken.
    """
    new_source = SourceCfg(
        id=source_id,
        location=location,
        enabled=enabled,
        added_at=utc_now_iso(),
    )
    result = ApidbConfig(version=cfg.version, sources=[*cfg.sources, new_source])
    validate_config(_cfg_to_dict(result))
    return result


def set_source_enabled(cfg: ApidbConfig, source_id: str, enabled: bool) -> ApidbConfig:
    """Return a copy of *cfg* with the ``enabled`` flag of *source_id* set."""
    if cfg.get_source(source_id) is None:
        known = ", ".join(s.id for s in cfg.sources) or "(none)"
        raise ConfigError(f"Unknown source id: {source_id} (configured: {known})")
    return ApidbConfig(
        version=cfg.version,
        sources=[
            replace(s, enabled=enabled) if s.id == source_id else s for s in cfg.sources
        ],
    )
