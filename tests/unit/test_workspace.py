"""Tests for workspace root discovery and the .apidb layout."""

from __future__ import annotations

from pathlib import Path

from apidb.workspace import WorkspaceHandle, find_workspace_root


def test_explicit_root_wins(tmp_path: Path) -> None:
    (tmp_path / ".apidb").mkdir()
    other = tmp_path / "other"
    other.mkdir()
    root, reason = find_workspace_root(cwd=tmp_path, root_flag=other)
    assert root == other.resolve()
    assert reason == "explicit --root"


def test_finds_nearest_ancestor_with_apidb_dir(tmp_path: Path) -> None:
    (tmp_path / ".apidb").mkdir()
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    root, reason = find_workspace_root(cwd=nested)
    assert root == tmp_path.resolve()
    assert reason == "found .apidb directory"


def test_defaults_to_cwd(tmp_path: Path) -> None:
    root, reason = find_workspace_root(cwd=tmp_path)
    assert root == tmp_path.resolve()
    assert reason == "default to cwd"


def test_handle_paths(tmp_path: Path) -> None:
    ws = WorkspaceHandle.at(tmp_path)
    base = tmp_path.resolve() / ".apidb"
    assert ws.config_path == base / "config.json"
    assert ws.index_path == base / "index.sqlite"
    assert ws.tmp_index_path == base / "index.sqlite.tmp"
    assert ws.backup_index_path == base / "index.sqlite.bak"
    assert ws.state_path == base / "state.sqlite"
    assert ws.blob_dir == base / "blobs"
    assert ws.lock_path == base / "lock"


def test_ensure_dir_is_idempotent(tmp_path: Path) -> None:
    ws = WorkspaceHandle.at(tmp_path)
    ws.ensure_dir()
    ws.ensure_dir()
    assert ws.apidb_dir.is_dir()
