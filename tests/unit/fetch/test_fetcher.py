"""Tests for SafeFetcher: local files, HTTP status handling, limits, redirects."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from apidb.errors import FetchError, RedirectError, SizeExceeded, UnsafeTarget
from apidb.fetch.fetcher import ConditionalHeaders, SafeFetcher

_LIMIT = 1024


@pytest.fixture
def fetcher() -> SafeFetcher:
    return SafeFetcher(timeout=5)


# ------------------------------------------------------------------
# Local files
# ------------------------------------------------------------------


def test_local_file(fetcher: SafeFetcher, tmp_path: Path) -> None:
    spec = tmp_path / "openapi.json"
    spec.write_bytes(b'{"openapi": "3.0.0"}')
    result = fetcher.fetch(str(spec), max_bytes=_LIMIT)
    assert result.data == b'{"openapi": "3.0.0"}'
    assert result.origin_kind == "file"
    assert result.effective_url is None


def test_local_file_too_large(fetcher: SafeFetcher, tmp_path: Path) -> None:
    spec = tmp_path / "big.json"
    spec.write_bytes(b"x" * (_LIMIT + 1))
    with pytest.raises(SizeExceeded, match=f"{_LIMIT + 1} > {_LIMIT}"):
        fetcher.fetch(str(spec), max_bytes=_LIMIT)


def test_local_file_missing(fetcher: SafeFetcher, tmp_path: Path) -> None:
    with pytest.raises(FetchError, match="Cannot read"):
        fetcher.fetch(str(tmp_path / "nope.json"), max_bytes=_LIMIT)


# ------------------------------------------------------------------
# HTTP
# ------------------------------------------------------------------


def test_http_ok_records_metadata(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve(
        "/spec.json",
        b"{}",
        headers={
            "ETag": '"v1"',
            "Last-Modified": "Mon, 01 Jan 2024 00:00:00 GMT",
            "Content-Type": "application/json",
        },
    )
    result = fetcher.fetch(http_server.url("/spec.json"), _LIMIT, allow_private_net=True)
    assert result.data == b"{}"
    assert result.origin_kind == "url"
    assert result.status == 200
    assert result.etag == '"v1"'
    assert result.last_modified == "Mon, 01 Jan 2024 00:00:00 GMT"
    assert result.content_type == "application/json"
    assert result.effective_url == http_server.url("/spec.json")


def test_http_sends_user_agent(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/spec.json", b"{}")
    fetcher.fetch(http_server.url("/spec.json"), _LIMIT, allow_private_net=True)
    _, headers = http_server.requests[-1]
    assert headers["user-agent"].startswith("apidb/")


def test_http_error_status(fetcher: SafeFetcher, http_server) -> None:
    with pytest.raises(FetchError, match="404") as excinfo:
        fetcher.fetch(http_server.url("/missing"), _LIMIT, allow_private_net=True)
    assert excinfo.value.status == 404


def test_loopback_server_blocked_by_default(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/spec.json", b"{}")
    with pytest.raises(UnsafeTarget):
        fetcher.fetch(http_server.url("/spec.json"), _LIMIT)
    assert http_server.requests == []


def test_content_length_over_limit(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/big", b"x" * (_LIMIT + 10))
    with pytest.raises(SizeExceeded, match=f"{_LIMIT + 10} > {_LIMIT}"):
        fetcher.fetch(http_server.url("/big"), _LIMIT, allow_private_net=True)


def test_streamed_body_over_limit(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/stream", b"x" * (_LIMIT * 3), headers={"Content-Length": None})
    with pytest.raises(SizeExceeded, match="MAX_SPEC_BYTES exceeded"):
        fetcher.fetch(http_server.url("/stream"), _LIMIT, allow_private_net=True)


def test_body_exactly_at_limit(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/exact", b"x" * _LIMIT, headers={"Content-Length": None})
    result = fetcher.fetch(http_server.url("/exact"), _LIMIT, allow_private_net=True)
    assert len(result.data) == _LIMIT


# ------------------------------------------------------------------
# Redirects
# ------------------------------------------------------------------


def test_follows_relative_redirect(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/old", b"", status=302, headers={"Location": "/new"})
    http_server.serve("/new", b"{}")
    result = fetcher.fetch(http_server.url("/old"), _LIMIT, allow_private_net=True)
    assert result.data == b"{}"
    assert result.effective_url == http_server.url("/new")


@pytest.mark.parametrize("status", [300, 305])
def test_any_3xx_with_location_is_followed(fetcher: SafeFetcher, http_server, status: int) -> None:
    http_server.serve("/choices", b"", status=status, headers={"Location": "/new"})
    http_server.serve("/new", b"{}")
    result = fetcher.fetch(http_server.url("/choices"), _LIMIT, allow_private_net=True)
    assert result.data == b"{}"
    assert result.effective_url == http_server.url("/new")


def test_too_many_redirects(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/loop", b"", status=301, headers={"Location": "/loop"})
    with pytest.raises(RedirectError, match="too many redirects"):
        fetcher.fetch(http_server.url("/loop"), _LIMIT, allow_private_net=True)
    assert len(http_server.requests) == 6


def test_redirect_without_location(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/bad", b"", status=307)
    with pytest.raises(RedirectError, match="without Location"):
        fetcher.fetch(http_server.url("/bad"), _LIMIT, allow_private_net=True)


def test_redirect_hop_is_ssrf_checked(fetcher: SafeFetcher) -> None:
    redirect = MagicMock(status=302, headers={"Location": "http://127.0.0.1/admin"})
    addr_info = [(None, None, None, None, ("93.184.216.34", 0))]
    with patch("apidb.fetch.net.socket.getaddrinfo", return_value=addr_info):
        with patch.object(fetcher, "_open", return_value=redirect) as opened:
            with pytest.raises(UnsafeTarget):
                fetcher.fetch("https://example.com/spec.json", _LIMIT)
    assert opened.call_count == 1


# ------------------------------------------------------------------
# Conditional requests
# ------------------------------------------------------------------


def test_conditional_request_304(fetcher: SafeFetcher, http_server) -> None:
    def route(headers):
        if headers.get("if-none-match") == '"v1"':
            return 304, {"ETag": '"v1"'}, b""
        return 200, {"ETag": '"v1"'}, b"{}"

    http_server.routes["/spec.json"] = route
    result = fetcher.fetch(
        http_server.url("/spec.json"),
        _LIMIT,
        allow_private_net=True,
        conditional=ConditionalHeaders(etag='"v1"'),
    )
    assert result.not_modified
    assert result.data == b""
    assert result.etag == '"v1"'


def test_if_modified_since_sent(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/spec.json", b"{}")
    fetcher.fetch(
        http_server.url("/spec.json"),
        _LIMIT,
        allow_private_net=True,
        conditional=ConditionalHeaders(last_modified="Mon, 01 Jan 2024 00:00:00 GMT"),
    )
    _, headers = http_server.requests[-1]
    assert headers["if-modified-since"] == "Mon, 01 Jan 2024 00:00:00 GMT"
    assert "if-none-match" not in headers


def test_unsolicited_304_is_an_error(fetcher: SafeFetcher, http_server) -> None:
    http_server.serve("/spec.json", b"", status=304)
    with pytest.raises(FetchError, match="unexpected 304") as excinfo:
        fetcher.fetch(http_server.url("/spec.json"), _LIMIT, allow_private_net=True)
    assert excinfo.value.status == 304


def test_empty_conditional_headers_are_falsy() -> None:
    assert not ConditionalHeaders()
    assert ConditionalHeaders().to_headers() == {}
    assert ConditionalHeaders(etag='"a"').to_headers() == {"If-None-Match": '"a"'}
