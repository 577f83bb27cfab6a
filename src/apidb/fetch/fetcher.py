"""Resolve a source location (local path or http(s) URL) to raw bytes.

Security requirements for URLs:
- SSRF guard on the initial URL and on every redirect hop (see net.py).
- Redirects are followed manually, at most 5.
- Byte ceiling: a Content-Length above the limit fails before the body is
  read; otherwise the body is streamed and aborted as soon as the running
  total exceeds the limit.
- Timeout: 30 seconds per connection (connect + each read).
- Environment proxies are bypassed so the validated host is the one
  connected to.

Local paths are stat'ed against the same ceiling and read whole.
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from http.client import HTTPException, HTTPResponse
from pathlib import Path

from apidb import __version__
from apidb.db.models import OriginKind
from apidb.errors import FetchError, RedirectError, SizeExceeded
from apidb.fetch.net import assert_safe_url, is_http_url

logger = logging.getLogger(__name__)

USER_AGENT = f"apidb/{__version__}"
DEFAULT_TIMEOUT = 30  # seconds
MAX_REDIRECTS = 5
_READ_CHUNK = 64 * 1024


def _is_redirect(status: int) -> bool:
    """Any 3xx except 304 Not Modified, which answers a conditional request."""
    return 300 <= status < 400 and status != 304


@dataclass
class ConditionalHeaders:
    """Validators from a previous fetch, sent as If-None-Match / If-Modified-Since."""

    etag: str | None = None
    last_modified: str | None = None

    def to_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers

    def __bool__(self) -> bool:
        return bool(self.etag or self.last_modified)


@dataclass
class FetchResult:
    """Raw bytes plus the transport metadata the cache ledger records.

    For a 304 response ``not_modified`` is True and ``data`` is empty; the
    caller replays the previously stored blob.
    """

    data: bytes
    origin_kind: OriginKind
    content_type: str | None = None
    status: int | None = None
    effective_url: str | None = None
    etag: str | None = None
    last_modified: str | None = None

    @property
    def not_modified(self) -> bool:
        return self.status == 304


class _PassThroughErrorProcessor(urllib.request.HTTPErrorProcessor):
    """Return every response as-is so redirects and 304s reach SafeFetcher.

    The default processor turns non-2xx into HTTPError and hands 3xx to the
    redirect handler, which would follow redirects without re-running the
    SSRF guard.
    """

    def http_response(self, request, response):
        return response

    https_response = http_response


class SafeFetcher:
    """Fetch source bytes with SSRF protection, redirect and size limits."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.user_agent = user_agent
        self._opener = urllib.request.build_opener(
            urllib.request.ProxyHandler({}),
            _PassThroughErrorProcessor(),
        )

    def fetch(
        self,
        location: str,
        max_bytes: int,
        allow_private_net: bool = False,
        conditional: ConditionalHeaders | None = None,
    ) -> FetchResult:
        """Return the bytes at *location*.

        Raises:
            UnsafeTarget: URL (or a redirect hop) targets an internal address.
            RedirectError: More than ``max_redirects`` hops, or no Location.
            SizeExceeded: Source larger than *max_bytes*.
            FetchError: Non-2xx status, unexpected 304, or I/O failure.
        """
        if is_http_url(location):
            return self._fetch_url(location, max_bytes, allow_private_net, conditional)
        return self._fetch_file(location, max_bytes)

    # ------------------------------------------------------------------
    # Local files
    # ------------------------------------------------------------------

    @staticmethod
    def _fetch_file(location: str, max_bytes: int) -> FetchResult:
        path = Path(location)
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise FetchError(f"Cannot read '{location}': {exc.strerror or exc}") from exc
        if size > max_bytes:
            raise SizeExceeded(size, max_bytes)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise FetchError(f"Cannot read '{location}': {exc.strerror or exc}") from exc
        return FetchResult(data=data, origin_kind="file")

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def _fetch_url(
        self,
        url: str,
        max_bytes: int,
        allow_private_net: bool,
        conditional: ConditionalHeaders | None,
    ) -> FetchResult:
        headers = {"User-Agent": self.user_agent}
        if conditional:
            headers.update(conditional.to_headers())

        response, effective_url = self._open_following_redirects(
            url, headers, allow_private_net
        )
        with response:
            status = response.status
            if status == 304:
                if not conditional:
                    raise FetchError(
                        f"Fetch failed: unexpected 304 Not Modified for {effective_url} "
                        "(no conditional request was sent)",
                        status=304,
                    )
                logger.info("%s not modified (304)", effective_url)
                return FetchResult(
                    data=b"",
                    origin_kind="url",
                    status=304,
                    effective_url=effective_url,
                    etag=response.headers.get("ETag") or conditional.etag,
                    last_modified=response.headers.get("Last-Modified")
                    or conditional.last_modified,
                    content_type=response.headers.get("Content-Type"),
                )
            if not 200 <= status < 300:
                raise FetchError(
                    f"Fetch failed: {status} {response.reason} ({effective_url})",
                    status=status,
                )

            data = self._read_bounded(response, max_bytes)
            return FetchResult(
                data=data,
                origin_kind="url",
                status=status,
                effective_url=effective_url,
                content_type=response.headers.get("Content-Type"),
                etag=response.headers.get("ETag"),
                last_modified=response.headers.get("Last-Modified"),
            )

    def _open_following_redirects(
        self, url: str, headers: dict[str, str], allow_private_net: bool
    ) -> tuple[HTTPResponse, str]:
        """Open *url*, following up to ``max_redirects`` redirects manually.

        The SSRF guard runs before every hop.
        """
        current = url
        for hop in range(self.max_redirects + 1):
            assert_safe_url(current, allow_private_net=allow_private_net)
            response = self._open(current, headers)
            if not _is_redirect(response.status):
                return response, current

            target = response.headers.get("Location")
            response.close()
            if not target:
                raise RedirectError(
                    f"Fetch failed: redirect ({response.status}) without Location header "
                    f"({current})"
                )
            if hop == self.max_redirects:
                raise RedirectError(
                    f"Fetch failed: too many redirects (>{self.max_redirects}) for '{url}'"
                )
            current = urllib.parse.urljoin(current, target)
            logger.debug("redirect %d -> %s", hop + 1, current)

        raise RedirectError(f"Fetch failed: redirect loop for '{url}'")

    def _open(self, url: str, headers: dict[str, str]) -> HTTPResponse:
        request = urllib.request.Request(url, headers=headers)
        try:
            return self._opener.open(request, timeout=self.timeout)
        except urllib.error.URLError as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc.reason}") from exc
        except (OSError, HTTPException) as exc:
            raise FetchError(f"Failed to fetch URL '{url}': {exc}") from exc

    @staticmethod
    def _read_bounded(response: HTTPResponse, max_bytes: int) -> bytes:
        """Read the body, failing as soon as it exceeds *max_bytes*."""
        declared = response.headers.get("Content-Length")
        if declared is not None:
            try:
                declared_len = int(declared)
            except ValueError:
                declared_len = None
            if declared_len is not None and declared_len > max_bytes:
                raise SizeExceeded(declared_len, max_bytes)

        chunks: list[bytes] = []
        total = 0
        while True:
            try:
                chunk = response.read(_READ_CHUNK)
            except (OSError, HTTPException) as exc:
                raise FetchError(f"Failed while reading response body: {exc}") from exc
            if not chunk:
                break
            total += len(chunk)
            if total > max_bytes:
                raise SizeExceeded(total, max_bytes)
            chunks.append(chunk)
        return b"".join(chunks)
