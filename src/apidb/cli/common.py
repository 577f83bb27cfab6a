"""Shared CLI plumbing: the --root option, workspace selection, error exit."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from apidb.cli.errors import err_from_exception
from apidb.errors import ApidbError
from apidb.workspace import WorkspaceHandle, find_workspace_root

console = Console()

RootOption = Annotated[
    Path | None,
    typer.Option("--root", help="Workspace root (overrides auto-discovery)."),
]

JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Machine-readable JSON output."),
]


def resolve_workspace(root: Path | None) -> WorkspaceHandle:
    """Pick the workspace for a command from --root or the current directory."""
    selected, _ = find_workspace_root(root_flag=root)
    return WorkspaceHandle.at(selected)


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Print any apidb, filesystem or SQLite failure as one line and exit 1."""
    try:
        yield
    except (ApidbError, OSError, sqlite3.Error) as exc:
        console.print(err_from_exception(exc), soft_wrap=True)
        raise typer.Exit(1) from exc
