"""Tests for apidb rich error messages."""

from __future__ import annotations

import io

from rich.console import Console

from apidb.cli.errors import (
    err_from_exception,
    err_locked,
    err_source_failed,
    err_unknown_source,
    warn_source_failed,
)
from apidb.db.models import SourceStatus
from apidb.errors import AlreadyLocked, FetchError, NotFound, SourceFailed


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _plain(markup: str) -> str:
    """Render rich markup the way the CLI prints it, without styling."""
    buf = io.StringIO()
    Console(file=buf, width=200, color_system=None).print(markup, soft_wrap=True)
    return buf.getvalue().rstrip("\n")


# ---------------------------------------------------------------------------
# err_from_exception
# ---------------------------------------------------------------------------


def test_generic_error_is_one_line() -> None:
    text = _plain(err_from_exception(NotFound("Doc not found: schema:a:B")))
    assert text == "Error: Doc not found: schema:a:B"


def test_markup_in_message_is_escaped() -> None:
    text = _plain(err_from_exception(FetchError("Fetch failed: 404 ([bold]x[/bold])")))
    assert text == "Error: Fetch failed: 404 ([bold]x[/bold])"


def test_locked_dispatch() -> None:
    msg = err_from_exception(AlreadyLocked("/w/.apidb/lock"))
    assert msg == err_locked("/w/.apidb/lock")


def test_source_failed_dispatch() -> None:
    exc = SourceFailed("petstore", FetchError("Fetch failed: 500 Internal Server Error"))
    assert err_from_exception(exc) == err_source_failed(exc)


# ---------------------------------------------------------------------------
# Individual messages
# ---------------------------------------------------------------------------


def test_err_locked_names_action() -> None:
    text = _plain(err_locked("/w/.apidb/lock"))
    assert "/w/.apidb/lock" in text
    assert "Wait for the running sync to finish" in text


def test_err_source_failed_mentions_allow_partial() -> None:
    exc = SourceFailed("petstore", FetchError("boom"))
    text = _plain(err_source_failed(exc))
    assert text.startswith("Error: Source petstore failed: boom")
    assert "--allow-partial" in text


def test_err_unknown_source_lists_known() -> None:
    text = _plain(err_unknown_source("x", ["a", "b"]))
    assert "Unknown source id: 'x'" in text
    assert "Configured sources: a, b" in text


def test_warn_source_failed() -> None:
    status = SourceStatus(source_id="bad", last_error="Cannot read 'x.json'")
    assert _plain(warn_source_failed(status)) == "⚠ bad skipped: Cannot read 'x.json'"


def test_stale_lock_dispatch_names_dead_pid() -> None:
    exc = AlreadyLocked("/w/.apidb/lock", owner_pid=4242, stale=True)
    text = _plain(err_from_exception(exc))
    assert "pid 4242, which is no longer running" in text
    assert "Remove the file" in text
