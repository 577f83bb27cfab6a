"""Shared pytest fixtures."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from apidb.config import add_openapi_source, init_config, load_config, save_config
from apidb.db.connection import Database
from apidb.db.schema import initialize_index
from apidb.sync import sync_workspace
from apidb.workspace import WorkspaceHandle

PETSTORE = {
    "openapi": "3.0.3",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List all pets",
                "tags": ["pets"],
            },
            "post": {
                "operationId": "createPet",
                "summary": "Create a pet",
                "tags": ["pets"],
            },
        },
        "/pets/{petId}": {
            "get": {
                "operationId": "showPetById",
                "summary": "Info for a specific pet",
                "tags": ["pets"],
            },
        },
    },
    "components": {
        "schemas": {
            "Pet": {
                "type": "object",
                "description": "A pet in the store",
                "properties": {
                    "id": {"type": "integer", "description": "Unique id"},
                    "name": {"type": "string"},
                    "owner": {"$ref": "#/components/schemas/Owner"},
                },
            },
            "Owner": {"type": "object", "properties": {"name": {"type": "string"}}},
        }
    },
}


INVENTORY = {
    "openapi": "3.1.0",
    "paths": {
        "/items": {
            "get": {
                "operationId": "listItems",
                "summary": "List inventory items",
                "tags": ["inventory"],
            }
        },
        "/pets": {"get": {"operationId": "listStockedPets", "summary": "Pets in stock"}},
    },
    "components": {"schemas": {"Item": {"type": "object", "description": "Stock item"}}},
}


@pytest.fixture
def petstore_bytes() -> bytes:
    return json.dumps(PETSTORE).encode("utf-8")


@pytest.fixture
def ws(tmp_path: Path) -> WorkspaceHandle:
    """Workspace rooted at tmp_path with an empty config.json."""
    handle = WorkspaceHandle.at(tmp_path)
    init_config(handle)
    return handle


@pytest.fixture
def write_spec(tmp_path: Path) -> Callable[..., Path]:
    """Write an OpenAPI document (dict or raw bytes) under tmp_path/specs/."""

    def _write(name: str, spec: dict | bytes = PETSTORE) -> Path:
        path = tmp_path / "specs" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        data = spec if isinstance(spec, bytes) else json.dumps(spec).encode("utf-8")
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def synced(ws: WorkspaceHandle, write_spec) -> WorkspaceHandle:
    """Workspace with sources ``petstore`` and ``inventory`` both synced.

    ``GET /pets`` exists in both; everything else is unique to one source.
    """
    cfg = load_config(ws)
    cfg = add_openapi_source(cfg, "petstore", str(write_spec("petstore.json")))
    cfg = add_openapi_source(cfg, "inventory", str(write_spec("inventory.json", INVENTORY)))
    save_config(ws, cfg)
    sync_workspace(ws)
    return ws


@pytest.fixture
def index_conn(tmp_path: Path):
    """Writable index connection with the schema created, closed after the test."""
    conn = Database(tmp_path / "index.sqlite", journal_mode="DELETE").connect()
    initialize_index(conn)
    yield conn
    conn.close()


# ---------------------------------------------------------------------------
# Local HTTP server
# ---------------------------------------------------------------------------

# A route receives the request headers (lower-cased names) and returns
# (status, headers, body).
# A header value of None suppresses it (e.g. {"Content-Length": None}).
Route = Callable[[dict[str, str]], tuple[int, dict[str, str | None], bytes]]


class StubServer:
    """Threaded HTTP/1.0 server on 127.0.0.1 with per-path routes."""

    def __init__(self) -> None:
        self.routes: dict[str, Route] = {}
        self.requests: list[tuple[str, dict[str, str]]] = []
        stub = self

        class _Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                headers = {k.lower(): v for k, v in self.headers.items()}
                stub.requests.append((self.path, headers))
                route = stub.routes.get(self.path)
                if route is None:
                    status, extra, body = 404, {}, b"not found"
                else:
                    status, extra, body = route(headers)

                self.send_response(status)
                extra = dict(extra)
                length = extra.pop("Content-Length", str(len(body)))
                if length is not None and status != 304:
                    self.send_header("Content-Length", length)
                for name, value in extra.items():
                    if value is not None:
                        self.send_header(name, value)
                self.end_headers()
                if status != 304:
                    self.wfile.write(body)

            def log_message(self, format: str, *args: object) -> None:
                pass

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    def url(self, path: str) -> str:
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}{path}"

    def serve(
        self,
        path: str,
        body: bytes,
        status: int = 200,
        headers: dict[str, str | None] | None = None,
    ) -> None:
        """Register a static response for *path*."""
        self.routes[path] = lambda _req: (status, dict(headers or {}), body)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture
def http_server():
    server = StubServer()
    server.start()
    yield server
    server.stop()
