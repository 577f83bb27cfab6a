"""Filesystem helpers: idempotent delete and atomic byte writes."""

from __future__ import annotations

import os
import uuid
from pathlib import Path


def remove_if_exists(path: Path) -> bool:
    """Delete *path*; a missing file counts as success.

    Returns:
        True if a file was removed, False if there was nothing to remove.
        Any other OSError (permissions, is-a-directory, ...) propagates.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write *data* to a uniquely named sibling temp file, then rename into place."""
    temp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}.{uuid.uuid4().hex}")
    try:
        with temp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    except BaseException:
        remove_if_exists(temp_path)
        raise
