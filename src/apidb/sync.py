"""Sync pipeline: rebuild the index from all enabled sources and publish it.

Per sync (always inside a WorkspaceLock):
  1. Load config.json; split sources into enabled / disabled.
  2. Build a fresh index at ``index.sqlite.tmp`` (stale temp removed first);
     open the persistent cache ledger (``state.sqlite``) and blob store.
  3. Copy every configured source into the new index.
  4. For each enabled source, in config order:
       fetch (conditional if validators + a replayable blob exist)
       → store blob → record blob row → prune older blobs → save validators
       → reduce to Docs → record status.
     A failing source gets an error status row; strict mode aborts here.
  5. Insert all Docs + FTS rows in one transaction.
  6. Publish: index.sqlite is linked to index.sqlite.bak, then tmp is
     renamed over index.sqlite, so the canonical path never disappears.
  7. On any failure before publish the temp index is deleted and the
     previously published index and backup are left untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from apidb.config import ApidbConfig, SourceCfg, SyncSettings, load_config
from apidb.db.connection import Database
from apidb.db.ledger import CacheLedger
from apidb.db.models import (
    KIND_OPERATION,
    KIND_SCHEMA,
    Blob,
    Doc,
    HttpCacheEntry,
    Source,
    SourceStatus,
    utc_now_iso,
)
from apidb.db.repository import IndexRepository
from apidb.db.schema import initialize_index
from apidb.errors import FetchError, ParseError, SourceFailed
from apidb.fetch.blobs import BlobStore
from apidb.fetch.fetcher import ConditionalHeaders, FetchResult, SafeFetcher
from apidb.fetch.net import is_http_url
from apidb.fsutil import remove_if_exists
from apidb.lock import WorkspaceLock
from apidb.openapi import reduce_to_docs
from apidb.workspace import WorkspaceHandle

logger = logging.getLogger(__name__)

# (bytes, source_id, filename) -> docs; raises ParseError on bad input.
Reducer = Callable[[bytes, str, str], list[Doc]]


@dataclass
class SyncResult:
    """Summary of a completed sync.

    Attributes:
        sources_processed: Number of enabled sources attempted.
        docs_inserted: Docs written to the published index.
        statuses: Status row of every enabled source, in config order.
    """

    sources_processed: int
    docs_inserted: int
    statuses: list[SourceStatus] = field(default_factory=list)

    @property
    def failed(self) -> list[SourceStatus]:
        return [s for s in self.statuses if s.last_error is not None]


def sync_workspace(
    ws: WorkspaceHandle,
    strict: bool = True,
    settings: SyncSettings | None = None,
    fetcher: SafeFetcher | None = None,
    reducer: Reducer = reduce_to_docs,
) -> SyncResult:
    """Rebuild and publish the index for *ws* under the workspace lock.

    Args:
        ws: Workspace to sync.
        strict: Abort on the first failing source (nothing is published).
            When False, failures are recorded and the other sources proceed.
        settings: Byte ceiling and private-network policy; defaults come
            from SyncSettings.from_env().
        fetcher: Override the SafeFetcher (timeouts, testing).
        reducer: Override the OpenAPI reduction step.

    Raises:
        AlreadyLocked / LockIOError: Another sync is running, or the lock
            marker could not be created.
        ConfigError: config.json is missing or invalid.
        SourceFailed: strict mode and a source failed to fetch or parse.
    """
    with WorkspaceLock(ws):
        cfg = load_config(ws)
        builder = IndexBuilder(
            ws,
            settings=settings if settings is not None else SyncSettings.from_env(),
            strict=strict,
            fetcher=fetcher,
            reducer=reducer,
        )
        return builder.build(cfg)


class IndexBuilder:
    """Builds one index generation in a temp file and publishes it by rename.

    Must only be used while the caller holds the WorkspaceLock.
    """

    def __init__(
        self,
        ws: WorkspaceHandle,
        settings: SyncSettings,
        strict: bool = True,
        fetcher: SafeFetcher | None = None,
        reducer: Reducer = reduce_to_docs,
    ) -> None:
        self.ws = ws
        self.settings = settings
        self.strict = strict
        self.fetcher = fetcher or SafeFetcher()
        self.reducer = reducer
        self.blobs = BlobStore(ws.blob_dir)

    def build(self, cfg: ApidbConfig) -> SyncResult:
        enabled = cfg.enabled_sources
        tmp_path = self.ws.tmp_index_path

        self.ws.ensure_dir()
        self._remove_stale_temp()
        self.blobs.ensure_dir()
        ledger = CacheLedger.open(self.ws.state_path, self.blobs)
        conn = Database(tmp_path, journal_mode="DELETE").connect()
        try:
            initialize_index(conn)
            repo = IndexRepository(conn)

            for s in cfg.sources:
                repo.add_source(
                    Source(
                        id=s.id,
                        type=s.type,
                        location=s.location,
                        enabled=s.enabled,
                        added_at=s.added_at or utc_now_iso(),
                    )
                )

            all_docs: list[Doc] = []
            statuses: list[SourceStatus] = []
            for source in enabled:
                fetched_at = utc_now_iso()
                try:
                    docs = self._sync_source(source, ledger, fetched_at)
                except (FetchError, ParseError) as exc:
                    status = SourceStatus(
                        source_id=source.id,
                        last_fetched_at=fetched_at,
                        last_error=str(exc),
                    )
                    repo.put_status(status)
                    statuses.append(status)
                    if self.strict:
                        raise SourceFailed(source.id, exc) from exc
                    logger.warning("source %s failed: %s", source.id, exc)
                    continue

                status = SourceStatus(
                    source_id=source.id,
                    last_fetched_at=fetched_at,
                    last_ok_at=fetched_at,
                    doc_count_operations=sum(1 for d in docs if d.kind == KIND_OPERATION),
                    doc_count_schemas=sum(1 for d in docs if d.kind == KIND_SCHEMA),
                )
                repo.put_status(status)
                statuses.append(status)
                all_docs.extend(docs)
                logger.info(
                    "source %s: %d operations, %d schemas",
                    source.id,
                    status.doc_count_operations,
                    status.doc_count_schemas,
                )

            inserted = repo.insert_docs(all_docs)
            conn.close()
            self._publish()
        except BaseException:
            conn.close()
            remove_if_exists(tmp_path)
            raise
        finally:
            ledger.close()

        logger.info("published index %s (%d docs)", self.ws.index_path, inserted)
        return SyncResult(
            sources_processed=len(enabled),
            docs_inserted=inserted,
            statuses=statuses,
        )

    # ------------------------------------------------------------------
    # Per-source pipeline
    # ------------------------------------------------------------------

    def _sync_source(
        self, source: SourceCfg, ledger: CacheLedger, fetched_at: str
    ) -> list[Doc]:
        """Fetch, persist, and reduce one source. Returns its Docs."""
        is_url = is_http_url(source.location)
        prior = ledger.latest_blob(source.id)
        cache = ledger.get_http_cache(source.id) if is_url else None
        conditional = self._conditional_headers(source, cache, prior)

        try:
            result = self.fetcher.fetch(
                source.location,
                max_bytes=self.settings.max_spec_bytes,
                allow_private_net=self.settings.allow_private_net,
                conditional=conditional,
            )
            data = self._payload_bytes(source, result, prior)
        except FetchError as exc:
            if is_url:
                ledger.upsert_http_cache(
                    replace(
                        cache or HttpCacheEntry(source_id=source.id, location=source.location),
                        location=source.location,
                        last_checked_at=fetched_at,
                        last_error=str(exc),
                    )
                )
            raise

        put = self.blobs.put(data)
        ledger.insert_blob(
            Blob(
                sha256=put.sha256,
                source_id=source.id,
                fetched_at=fetched_at,
                kind=result.origin_kind,
                location=source.location,
                effective_url=result.effective_url,
                content_type=result.content_type
                or (prior.content_type if result.not_modified and prior else None),
                bytes_length=len(data),
                blob_path=str(put.path),
            )
        )
        ledger.prune_blobs(source.id)

        if is_url:
            ledger.upsert_http_cache(
                HttpCacheEntry(
                    source_id=source.id,
                    location=source.location,
                    effective_url=result.effective_url,
                    etag=result.etag,
                    last_modified=result.last_modified,
                    last_checked_at=fetched_at,
                    last_fetched_at=fetched_at,
                    last_error=None,
                )
            )

        return self.reducer(data, source.id, source.location)

    def _conditional_headers(
        self,
        source: SourceCfg,
        cache: HttpCacheEntry | None,
        prior: Blob | None,
    ) -> ConditionalHeaders | None:
        """Validators to send, or None when a 304 could not be replayed."""
        if cache is None or prior is None:
            return None
        if cache.location != source.location:
            return None
        if not self.blobs.exists(prior.sha256):
            return None
        headers = ConditionalHeaders(etag=cache.etag, last_modified=cache.last_modified)
        return headers if headers else None

    def _payload_bytes(
        self, source: SourceCfg, result: FetchResult, prior: Blob | None
    ) -> bytes:
        if not result.not_modified:
            return result.data
        if prior is None:
            raise FetchError(
                f"Fetch failed: 304 Not Modified for {source.location} "
                "but no stored copy exists to replay",
                status=304,
            )
        try:
            data = self.blobs.read(prior.sha256)
        except FileNotFoundError as exc:
            raise FetchError(
                f"Fetch failed: 304 Not Modified for {source.location} "
                f"but stored blob {prior.sha256} is missing",
                status=304,
            ) from exc
        logger.info("source %s not modified; replaying blob %s", source.id, prior.sha256)
        return data

    # ------------------------------------------------------------------
    # Temp file + publish
    # ------------------------------------------------------------------

    def _remove_stale_temp(self) -> None:
        tmp = self.ws.tmp_index_path
        for leftover in (tmp, tmp.with_name(tmp.name + "-journal")):
            if remove_if_exists(leftover):
                logger.warning("removed stale %s from an interrupted sync", leftover.name)

    def _publish(self) -> None:
        """Back up the current index, then rename the temp index over it.

        The backup is a hard link (a copy where links are unsupported), so
        ``index.sqlite`` exists at every instant and the single rename is
        the only change readers can observe.
        """
        index_path = self.ws.index_path
        backup_path = self.ws.backup_index_path
        if index_path.exists():
            remove_if_exists(backup_path)
            try:
                os.link(index_path, backup_path)
            except OSError:
                shutil.copy2(index_path, backup_path)
        os.replace(self.ws.tmp_index_path, index_path)
