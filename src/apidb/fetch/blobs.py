"""Content-addressed, append-only storage of fetched source bytes.

Layout: ``<blob_dir>/<sha256>.bin``. Identical bytes map to the same file, so
two sources that fetch the same document share storage. Files are never
overwritten: the first writer wins. Deciding *when* a file may be deleted is
the cache ledger's job (see CacheLedger.prune_blobs).
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from apidb.fsutil import atomic_write_bytes, remove_if_exists

logger = logging.getLogger(__name__)

_BLOB_SUFFIX = ".bin"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass
class PutResult:
    """Outcome of BlobStore.put().

    Attributes:
        sha256: Hex digest of the stored bytes.
        path: Where the blob lives on disk.
        written: False if an identical blob was already present.
    """

    sha256: str
    path: Path
    written: bool


class BlobStore:
    """Filesystem blob store rooted at *blob_dir*."""

    def __init__(self, blob_dir: Path | str) -> None:
        self.blob_dir = Path(blob_dir)

    def ensure_dir(self) -> Path:
        """Create the blob directory if missing (idempotent)."""
        self.blob_dir.mkdir(parents=True, exist_ok=True)
        return self.blob_dir

    def path_for(self, sha256: str) -> Path:
        return self.blob_dir / f"{sha256}{_BLOB_SUFFIX}"

    def put(self, data: bytes) -> PutResult:
        """Store *data* under its SHA-256 unless an identical blob exists."""
        digest = sha256_hex(data)
        path = self.path_for(digest)
        if path.exists():
            return PutResult(sha256=digest, path=path, written=False)
        self.ensure_dir()
        atomic_write_bytes(path, data)
        logger.debug("stored blob %s (%d bytes)", digest, len(data))
        return PutResult(sha256=digest, path=path, written=True)

    def read(self, sha256: str) -> bytes:
        """Return the bytes of a stored blob.

        Raises:
            FileNotFoundError: If no blob with that hash is on disk.
        """
        return self.path_for(sha256).read_bytes()

    def exists(self, sha256: str) -> bool:
        return self.path_for(sha256).is_file()

    def delete(self, sha256: str) -> bool:
        """Best-effort delete; returns False if the blob was already gone."""
        removed = remove_if_exists(self.path_for(sha256))
        if removed:
            logger.debug("deleted blob %s", sha256)
        return removed
