"""apidb rich error messages.

Every failure is shown as a single line that names what went wrong and, where
there is one, the exact action that fixes it. Exception messages are escaped
so paths or URLs containing ``[`` are not read as markup.

Usage:
    from apidb.cli.errors import err_from_exception
    console.print(err_from_exception(exc), soft_wrap=True)
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from apidb.db.models import SourceStatus
from apidb.errors import AlreadyLocked, SourceFailed


def err_from_exception(exc: BaseException) -> str:
    """One-line rendering of any error raised by an apidb operation."""
    if isinstance(exc, AlreadyLocked):
        if exc.stale:
            return err_stale_lock(exc.lock_path, exc.owner_pid)
        return err_locked(exc.lock_path)
    if isinstance(exc, SourceFailed):
        return err_source_failed(exc)
    return f"[red]Error:[/] {escape(str(exc))}"


def err_locked(lock_path: str) -> str:
    """Another sync holds the workspace lock.

    Example:
        Error: Workspace is locked: /w/.apidb/lock. Wait for the running sync to finish.
    """
    return (
        f"[red]Error:[/] Workspace is locked: {escape(lock_path)}. "
        "Wait for the running sync to finish."
    )


def err_stale_lock(lock_path: str, owner_pid: int | None) -> str:
    """The lock marker belongs to a process that no longer runs."""
    return (
        f"[red]Error:[/] Workspace is locked: {escape(lock_path)} by pid {owner_pid}, "
        "which is no longer running. Remove the file if no sync is in progress."
    )


def err_source_failed(exc: SourceFailed) -> str:
    """Strict sync aborted; the previously published index is unchanged."""
    return (
        f"[red]Error:[/] {escape(str(exc))} "
        "(index unchanged; use --allow-partial to skip failing sources)"
    )


def err_unknown_source(source_id: str, known: list[str]) -> str:
    known_list = ", ".join(known) if known else "(none)"
    return (
        f"[red]Error:[/] Unknown source id: '{escape(source_id)}'. "
        f"Configured sources: {escape(known_list)}"
    )


def warn_source_failed(status: SourceStatus) -> str:
    """Partial sync: one source failed and was left out of the index."""
    return (
        f"[yellow]⚠[/] {escape(status.source_id)} skipped: "
        f"{escape(status.last_error or 'unknown error')}"
    )
