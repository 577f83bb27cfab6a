"""Workspace-wide mutual exclusion for mutating operations.

The lock is an exclusive marker file (``.apidb/lock``) created with
O_CREAT | O_EXCL and holding the owner's pid. Acquisition never waits: a
second holder, in this process or another, fails immediately with
AlreadyLocked. A marker is never removed by anyone but its creator; when
the recorded pid no longer exists (e.g. a killed sync) the error says so
and the user deletes the file.

Usage:
    with WorkspaceLock(ws):
        ...  # mutate index / ledger / blobs
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from apidb.errors import AlreadyLocked, LockIOError
from apidb.fsutil import remove_if_exists
from apidb.workspace import WorkspaceHandle

logger = logging.getLogger(__name__)


class WorkspaceLock:
    """Scoped exclusive lock on a workspace; released on every exit path."""

    def __init__(self, ws: WorkspaceHandle) -> None:
        self.ws = ws
        self.path: Path = ws.lock_path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> WorkspaceLock:
        """Create the marker or fail fast.

        Raises:
            AlreadyLocked: A marker exists, whether or not its owner is alive.
            LockIOError: Any other filesystem failure.
        """
        if self.held:
            raise AlreadyLocked(str(self.path), owner_pid=os.getpid())
        try:
            self.ws.ensure_dir()
        except OSError as exc:
            raise LockIOError(
                f"Failed to acquire workspace lock ({self.path}): {exc}"
            ) from exc

        try:
            self._fd = self._create_marker()
        except FileExistsError:
            raise self._locked_error() from None
        except OSError as exc:
            raise LockIOError(
                f"Failed to acquire workspace lock ({self.path}): {exc}"
            ) from exc

        try:
            os.write(self._fd, f"{os.getpid()}\n".encode())
        except OSError as exc:
            self.release()
            raise LockIOError(f"Failed to write workspace lock ({self.path}): {exc}") from exc

        logger.debug("acquired workspace lock %s", self.path)
        return self

    def release(self) -> None:
        """Close the marker and delete it if it is still ours. Safe to call twice."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            owned = self._owns_marker(fd)
        finally:
            os.close(fd)
        if owned:
            remove_if_exists(self.path)
            logger.debug("released workspace lock %s", self.path)
        else:
            logger.warning("workspace lock %s was replaced or removed; leaving it", self.path)

    def __enter__(self) -> WorkspaceLock:
        return self.acquire()

    def __exit__(self, *args: object) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_marker(self) -> int:
        return os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)

    def _owns_marker(self, fd: int) -> bool:
        """True if the file at ``self.path`` is the one opened as *fd*."""
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        mine = os.fstat(fd)
        return (on_disk.st_dev, on_disk.st_ino) == (mine.st_dev, mine.st_ino)

    def _locked_error(self) -> AlreadyLocked:
        pid = read_lock_owner(self.path)
        stale = pid is not None and pid != os.getpid() and not _pid_alive(pid)
        return AlreadyLocked(str(self.path), owner_pid=pid, stale=stale)


def read_lock_owner(path: Path) -> int | None:
    """Return the pid recorded in a lock marker, or None if unreadable."""
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except OSError:
        # EPERM: the process exists but belongs to another user.
        return True
    return True
