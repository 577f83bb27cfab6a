"""Workspace root discovery and the on-disk layout under ``<root>/.apidb``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

APIDB_DIRNAME = ".apidb"


@dataclass(frozen=True)
class WorkspaceHandle:
    """Explicit handle on a workspace; every operation takes one.

    Attributes:
        root: Absolute workspace root. All state lives in ``root/.apidb``.
    """

    root: Path

    @classmethod
    def at(cls, root: Path | str) -> WorkspaceHandle:
        return cls(root=Path(root).resolve())

    @property
    def apidb_dir(self) -> Path:
        return self.root / APIDB_DIRNAME

    @property
    def config_path(self) -> Path:
        return self.apidb_dir / "config.json"

    @property
    def index_path(self) -> Path:
        return self.apidb_dir / "index.sqlite"

    @property
    def tmp_index_path(self) -> Path:
        return self.apidb_dir / "index.sqlite.tmp"

    @property
    def backup_index_path(self) -> Path:
        return self.apidb_dir / "index.sqlite.bak"

    @property
    def state_path(self) -> Path:
        return self.apidb_dir / "state.sqlite"

    @property
    def blob_dir(self) -> Path:
        return self.apidb_dir / "blobs"

    @property
    def lock_path(self) -> Path:
        return self.apidb_dir / "lock"

    def ensure_dir(self) -> Path:
        """Create ``.apidb/`` if missing and return it."""
        self.apidb_dir.mkdir(parents=True, exist_ok=True)
        return self.apidb_dir


def find_workspace_root(
    cwd: Path | None = None, root_flag: Path | str | None = None
) -> tuple[Path, str]:
    """Pick the workspace root and explain why.

    Priority: explicit ``--root`` → nearest ancestor of *cwd* containing
    ``.apidb/`` → *cwd* itself.

    Returns:
        ``(root, reason)`` where *reason* is a short human-readable string.
    """
    if root_flag:
        return Path(root_flag).resolve(), "explicit --root"

    start = (cwd if cwd is not None else Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if (candidate / APIDB_DIRNAME).is_dir():
            return candidate, f"found {APIDB_DIRNAME} directory"

    return start, "default to cwd"
