"""Tests for WorkspaceLock."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from apidb.errors import AlreadyLocked, LockIOError
from apidb.lock import WorkspaceLock, read_lock_owner
from apidb.workspace import WorkspaceHandle


def test_acquire_writes_pid(ws: WorkspaceHandle) -> None:
    with WorkspaceLock(ws) as lock:
        assert lock.held
        assert read_lock_owner(ws.lock_path) == os.getpid()
    assert not ws.lock_path.exists()


def test_second_acquire_fails_immediately(ws: WorkspaceHandle) -> None:
    with WorkspaceLock(ws):
        with pytest.raises(AlreadyLocked, match="Workspace is locked"):
            WorkspaceLock(ws).acquire()


def test_released_on_exception(ws: WorkspaceHandle) -> None:
    with pytest.raises(RuntimeError):
        with WorkspaceLock(ws):
            raise RuntimeError("boom")
    assert not ws.lock_path.exists()
    WorkspaceLock(ws).acquire().release()


def test_release_is_idempotent(ws: WorkspaceHandle) -> None:
    lock = WorkspaceLock(ws).acquire()
    lock.release()
    lock.release()
    assert not lock.held


def test_marker_from_live_process_blocks(ws: WorkspaceHandle) -> None:
    ws.lock_path.write_text("999999\n")
    with patch("apidb.lock._pid_alive", return_value=True):
        with pytest.raises(AlreadyLocked):
            WorkspaceLock(ws).acquire()
    assert ws.lock_path.exists()


def test_marker_without_pid_blocks(ws: WorkspaceHandle) -> None:
    ws.lock_path.write_text("")
    with pytest.raises(AlreadyLocked):
        WorkspaceLock(ws).acquire()


def test_marker_from_dead_process_is_reported_not_removed(ws: WorkspaceHandle) -> None:
    ws.lock_path.write_text("999999\n")
    with patch("apidb.lock._pid_alive", return_value=False):
        with pytest.raises(AlreadyLocked, match="pid 999999, which is dead") as excinfo:
            WorkspaceLock(ws).acquire()
    assert excinfo.value.stale
    assert excinfo.value.owner_pid == 999999
    assert read_lock_owner(ws.lock_path) == 999999


def test_dead_owner_never_yields_two_holders(ws: WorkspaceHandle) -> None:
    ws.lock_path.write_text("999999\n")
    holder_a = WorkspaceLock(ws)
    holder_b = WorkspaceLock(ws)
    calls: list[int] = []

    def a_tries_while_b_inspects(pid: int) -> bool:
        calls.append(pid)
        if len(calls) == 1:
            with pytest.raises(AlreadyLocked):
                holder_a.acquire()
        return False

    with patch("apidb.lock._pid_alive", side_effect=a_tries_while_b_inspects):
        with pytest.raises(AlreadyLocked):
            holder_b.acquire()

    assert not (holder_a.held or holder_b.held)
    assert read_lock_owner(ws.lock_path) == 999999


def test_deleted_dead_marker_allows_acquire(ws: WorkspaceHandle) -> None:
    ws.lock_path.write_text("999999\n")
    ws.lock_path.unlink()
    with WorkspaceLock(ws):
        assert read_lock_owner(ws.lock_path) == os.getpid()


def test_release_leaves_a_marker_it_does_not_own(ws: WorkspaceHandle) -> None:
    lock = WorkspaceLock(ws).acquire()
    ws.lock_path.unlink()
    ws.lock_path.write_text("424242\n")

    lock.release()
    assert not lock.held
    assert read_lock_owner(ws.lock_path) == 424242


def test_release_after_marker_vanished(ws: WorkspaceHandle) -> None:
    lock = WorkspaceLock(ws).acquire()
    ws.lock_path.unlink()
    lock.release()
    assert not ws.lock_path.exists()


def test_unexpected_os_error_is_lock_io_error(ws: WorkspaceHandle) -> None:
    with patch.object(WorkspaceLock, "_create_marker", side_effect=PermissionError("denied")):
        with pytest.raises(LockIOError, match="Failed to acquire workspace lock"):
            WorkspaceLock(ws).acquire()
