"""Exception taxonomy for apidb.

Every error carries a one-line, human-readable message that names what went
wrong and, where possible, how to fix it. The CLI renders these via
``apidb.cli.errors``; library callers can catch the specific subclasses.
"""

from __future__ import annotations


class ApidbError(Exception):
    """Base class for all apidb errors."""


# ---------------------------------------------------------------------------
# Workspace lock
# ---------------------------------------------------------------------------


class LockError(ApidbError):
    """Base class for workspace lock failures."""


class AlreadyLocked(LockError):
    """Another process holds the workspace lock."""

    def __init__(
        self, lock_path: str, owner_pid: int | None = None, stale: bool = False
    ) -> None:
        message = f"Workspace is locked: {lock_path}"
        if stale:
            message += (
                f" (held by pid {owner_pid}, which is dead; "
                "delete the file if no sync is running)"
            )
        super().__init__(message)
        self.lock_path = lock_path
        self.owner_pid = owner_pid
        self.stale = stale


class LockIOError(LockError):
    """The lock marker could not be created for a reason other than contention."""


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


class FetchError(ApidbError):
    """A source could not be fetched (non-2xx status, I/O failure, ...)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class UnsafeTarget(FetchError):
    """The URL points at a loopback, private, or otherwise internal address."""


class RedirectError(FetchError):
    """Too many redirects, or a redirect without a Location header."""


class SizeExceeded(FetchError):
    """The source is larger than the configured byte ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"MAX_SPEC_BYTES exceeded: {size} > {limit}")
        self.size = size
        self.limit = limit


# ---------------------------------------------------------------------------
# Parse / sync
# ---------------------------------------------------------------------------


class ParseError(ApidbError):
    """The fetched bytes are not a supported OpenAPI document."""


class SourceFailed(ApidbError):
    """A source failed during a strict sync; wraps the underlying error."""

    def __init__(self, source_id: str, cause: BaseException) -> None:
        super().__init__(f"Source {source_id} failed: {cause}")
        self.source_id = source_id
        self.cause = cause


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class NotFound(ApidbError):
    """No document (or index) matches the request."""


class Ambiguous(ApidbError):
    """An exact lookup matched documents in more than one enabled source."""

    def __init__(self, message: str, candidates: list[str]) -> None:
        super().__init__(message)
        self.candidates = candidates


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class ConfigError(ApidbError, ValueError):
    """Raised when config.json is missing, malformed, or contains invalid values."""


InvalidConfig = ConfigError


class InvalidArgument(ApidbError, ValueError):
    """A lookup argument (method, path, source id, kind, ...) is malformed."""
