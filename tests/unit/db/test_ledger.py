"""Tests for the persistent cache ledger (state.sqlite)."""

from __future__ import annotations

from pathlib import Path

import pytest

from apidb.db.ledger import CacheLedger
from apidb.db.models import Blob, HttpCacheEntry
from apidb.fetch.blobs import BlobStore


@pytest.fixture
def blobs(tmp_path: Path) -> BlobStore:
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def ledger(tmp_path: Path, blobs: BlobStore):
    led = CacheLedger.open(tmp_path / "state" / "state.sqlite", blobs)
    yield led
    led.close()


def _record(ledger: CacheLedger, source_id: str, data: bytes, fetched_at: str) -> str:
    put = ledger.blobs.put(data)
    ledger.insert_blob(
        Blob(
            sha256=put.sha256,
            source_id=source_id,
            fetched_at=fetched_at,
            kind="file",
            location=f"{source_id}.json",
            bytes_length=len(data),
            blob_path=str(put.path),
        )
    )
    return put.sha256


# ------------------------------------------------------------------
# HTTP cache validators
# ------------------------------------------------------------------


def test_http_cache_missing(ledger: CacheLedger) -> None:
    assert ledger.get_http_cache("a") is None


def test_http_cache_upsert(ledger: CacheLedger) -> None:
    ledger.upsert_http_cache(
        HttpCacheEntry(source_id="a", location="https://x/spec", etag='"v1"')
    )
    ledger.upsert_http_cache(
        HttpCacheEntry(
            source_id="a",
            location="https://x/spec",
            effective_url="https://cdn.x/spec",
            etag='"v2"',
            last_modified="Mon, 01 Jan 2024 00:00:00 GMT",
        )
    )
    entry = ledger.get_http_cache("a")
    assert entry.etag == '"v2"'
    assert entry.effective_url == "https://cdn.x/spec"
    assert entry.last_modified == "Mon, 01 Jan 2024 00:00:00 GMT"


# ------------------------------------------------------------------
# Blobs
# ------------------------------------------------------------------


def test_latest_blob_is_newest(ledger: CacheLedger) -> None:
    _record(ledger, "a", b"v1", "2024-01-01T00:00:00.000Z")
    sha2 = _record(ledger, "a", b"v2", "2024-01-02T00:00:00.000Z")
    assert ledger.latest_blob("a").sha256 == sha2
    assert ledger.latest_blob("b") is None


def test_reinserting_same_hash_refreshes_row(ledger: CacheLedger) -> None:
    _record(ledger, "a", b"v1", "2024-01-01T00:00:00.000Z")
    _record(ledger, "a", b"v1", "2024-01-05T00:00:00.000Z")
    rows = ledger.list_blobs("a")
    assert len(rows) == 1
    assert rows[0].fetched_at == "2024-01-05T00:00:00.000Z"


def test_prune_keeps_only_latest(ledger: CacheLedger, blobs: BlobStore) -> None:
    sha1 = _record(ledger, "a", b"v1", "2024-01-01T00:00:00.000Z")
    sha2 = _record(ledger, "a", b"v2", "2024-01-02T00:00:00.000Z")
    assert ledger.prune_blobs("a") == [sha1]
    assert [b.sha256 for b in ledger.list_blobs("a")] == [sha2]
    assert not blobs.exists(sha1)
    assert blobs.exists(sha2)


def test_prune_keeps_file_shared_with_other_source(
    ledger: CacheLedger, blobs: BlobStore
) -> None:
    shared = _record(ledger, "a", b"same", "2024-01-01T00:00:00.000Z")
    _record(ledger, "b", b"same", "2024-01-01T00:00:00.000Z")
    _record(ledger, "a", b"newer", "2024-01-02T00:00:00.000Z")

    ledger.prune_blobs("a")
    assert blobs.exists(shared)
    assert [b.sha256 for b in ledger.list_blobs("b")] == [shared]

    _record(ledger, "b", b"newer-b", "2024-01-03T00:00:00.000Z")
    ledger.prune_blobs("b")
    assert not blobs.exists(shared)


def test_prune_unknown_source_is_noop(ledger: CacheLedger) -> None:
    assert ledger.prune_blobs("ghost") == []


def test_ledger_persists_across_reopen(tmp_path: Path, blobs: BlobStore) -> None:
    path = tmp_path / "state.sqlite"
    led = CacheLedger.open(path, blobs)
    sha = _record(led, "a", b"v1", "2024-01-01T00:00:00.000Z")
    led.close()

    led = CacheLedger.open(path, blobs)
    try:
        assert led.latest_blob("a").sha256 == sha
    finally:
        led.close()
