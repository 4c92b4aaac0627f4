"""Sync engine that drives reconciliation passes between two gardens.

``SyncEngine.reconcile(source, target)`` runs one pass in one direction:

1. Captures the pass start time (the next cursor value).
2. Loads the known mappings from the source toward the target into a
   ``PassContext``.
3. Reads the cursor of the (source, target) pair (epoch if never synced).
4. For each synced table in order (cruxes, then paths), pages through the
   rows changed on the source since the cursor, twice:
   a. resolve and record every destination id;
   b. remap, conflict-resolve and upsert every row.
   Resolving all ids first means references between rows changed in the
   same pass point at destination ids regardless of processing order.
5. Advances the cursor to the pass start time, or to just before the
   oldest entity that failed so the next pass retries it.
6. Returns a ``SyncReport``.

``SyncEngine.sync_bidirectional(a, b)`` runs ``reconcile(a, b)`` then
``reconcile(b, a)`` and reports a single verdict.

Error handling is per entity: a mapping or upsert failure is logged and
reported, and the pass continues; the entity stays behind the cursor
until a later pass syncs it. Failures to read changed rows, load
mappings, or read/advance the cursor abort the pass without moving the
cursor; re-running is safe because mappings and upserts are idempotent.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from garden_sync.keys import KeyMaster
from garden_sync.sync.collision import CollisionResolver
from garden_sync.sync.context import PassContext
from garden_sync.sync.cursor import CursorStore
from garden_sync.sync.errors import (
    EntitySyncError,
    LegError,
    SyncInProgressError,
)
from garden_sync.sync.mapping import MappingStore
from garden_sync.sync.models import (
    ENTITY_TYPES,
    SyncAction,
    SyncEntity,
    SyncOutcome,
    SyncPhase,
    SyncReport,
    SyncResult,
    utc_now,
)
from garden_sync.sync.resolver import ConflictResolver
from garden_sync.sync.syncer import EntitySyncer

if TYPE_CHECKING:
    from garden_sync.config import Config
    from garden_sync.config_schema import PeerConfig
    from garden_sync.core.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200

# Gap left between a held-back cursor and the oldest failed row
_RETRY_MARGIN = timedelta(microseconds=1)


def _normalise_url(url: str) -> str:
    return url.rstrip("/")


class SyncEngine:
    """Reconcile content between gardens.

    Args:
        repository_for: Returns the repository for a garden URL.
        mappings: Durable mapping store.
        cursors: Durable cursor store.
        key_master: Mints replacement ids on collision.
        resolver: Conflict resolver (last-write-wins by default).
        page_size: Rows requested per changed-since page.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        repository_for: Callable[[str], Repository],
        mappings: MappingStore,
        cursors: CursorStore,
        key_master: KeyMaster | None = None,
        resolver: ConflictResolver | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.repository_for = repository_for
        self.mappings = mappings
        self.cursors = cursors
        self.page_size = page_size
        self._clock = clock
        self._syncer = EntitySyncer(
            CollisionResolver(mappings, key_master), resolver, key_master
        )
        self._locks_guard = threading.Lock()
        self._target_locks: dict[str, threading.Lock] = {}

    @classmethod
    def from_config(
        cls,
        config: Config,
        peers: dict[str, PeerConfig] | None = None,
    ) -> SyncEngine:
        """Build an engine whose repositories are HTTP garden clients.

        The local garden uses the credentials in *config*; a URL matching
        a configured peer uses that peer's token and TLS setting; any
        other URL is reached without a token.
        """
        from garden_sync.core.client import GardenClient

        peer_by_url = {
            _normalise_url(p.url): p for p in (peers or {}).values()
        }
        clients: dict[str, GardenClient] = {}

        def repository_for(url: str) -> Repository:
            url = _normalise_url(url)
            if url not in clients:
                if url == _normalise_url(config.garden_url):
                    clients[url] = GardenClient.from_config(config)
                elif url in peer_by_url:
                    peer = peer_by_url[url]
                    clients[url] = GardenClient(
                        url,
                        token=peer.token,
                        insecure=peer.insecure,
                        timeout=config.timeout,
                    )
                else:
                    clients[url] = GardenClient(
                        url,
                        insecure=config.insecure,
                        timeout=config.timeout,
                    )
            return clients[url]

        keys = KeyMaster()
        state_dir = Path(config.state_dir)
        return cls(
            repository_for=repository_for,
            mappings=MappingStore(state_dir, keys),
            cursors=CursorStore(state_dir),
            key_master=keys,
            page_size=config.page_size,
        )

    # ------------------------------------------------------------------
    # Bidirectional run
    # ------------------------------------------------------------------

    def sync_bidirectional(
        self, local_url: str, target_url: str
    ) -> SyncOutcome:
        """Sync *local_url* -> *target_url*, then back.

        The second leg only runs if the first succeeds. Writes of a leg
        that completed stay committed even when the run fails.

        Returns:
            A ``SyncOutcome``; on failure ``error`` is a ``LegError``
            whose ``__cause__`` is the original exception.
        """
        local_url = _normalise_url(local_url)
        target_url = _normalise_url(target_url)
        logger.info(
            "Starting bidirectional sync %s <-> %s", local_url, target_url
        )
        reports: list[SyncReport] = []
        legs = [
            (SyncPhase.SYNCING_A_TO_B, local_url, target_url),
            (SyncPhase.SYNCING_B_TO_A, target_url, local_url),
        ]

        for phase, source, target in legs:
            logger.debug("Sync phase: %s", phase.value)
            try:
                reports.append(self.reconcile(source, target))
            except Exception as exc:
                error = LegError(source, target, exc)
                logger.error(
                    "Bidirectional sync failed during %s: %s",
                    phase.value,
                    exc,
                    exc_info=True,
                )
                return SyncOutcome(
                    success=False,
                    phase=SyncPhase.FAILED,
                    error=error,
                    reports=reports,
                )

        logger.info("Bidirectional sync completed successfully")
        return SyncOutcome(
            success=True, phase=SyncPhase.IDLE, reports=reports
        )

    # ------------------------------------------------------------------
    # One direction
    # ------------------------------------------------------------------

    def reconcile(self, source_url: str, target_url: str) -> SyncReport:
        """Run one pass from *source_url* to *target_url*.

        Raises:
            ValueError: If source and target are the same garden.
            SyncInProgressError: If a pass toward *target_url* is already
                running in this engine.
            CursorError: If the cursor cannot be read or advanced.
            MappingError: If the mappings for the target cannot be loaded.
        """
        source_url = _normalise_url(source_url)
        target_url = _normalise_url(target_url)
        if source_url == target_url:
            raise ValueError(
                f"Cannot sync a garden with itself: {source_url}"
            )

        lock = self._target_lock(target_url)
        if not lock.acquire(blocking=False):
            raise SyncInProgressError(
                f"A sync toward {target_url} is already in progress"
            )
        try:
            return self._reconcile(source_url, target_url)
        finally:
            lock.release()

    def _reconcile(self, source_url: str, target_url: str) -> SyncReport:
        started = self._clock()
        source = self.repository_for(source_url)
        target = self.repository_for(target_url)

        ctx = PassContext(source=source_url, target=target_url)
        for entity_type in ENTITY_TYPES.values():
            ctx.lookups[entity_type] = self.mappings.load(
                target_url, entity_type, source=source_url
            )
        logger.debug(
            "Loaded %d mappings for %s -> %s",
            sum(len(m) for m in ctx.lookups.values()),
            source_url,
            target_url,
        )

        since = self.cursors.last_sync(target_url, source_url)
        logger.info(
            "Syncing %s -> %s (changes since %s)",
            source_url,
            target_url,
            since.isoformat(),
        )

        results: list[SyncResult] = []
        failed_at: list[datetime] = []
        for table in ENTITY_TYPES:
            swept, oldest = self._sweep(ctx, table, since, source, target)
            results.extend(swept)
            if oldest is not None:
                failed_at.append(oldest)

        new_cursor = started
        if failed_at:
            new_cursor = min(started, min(failed_at) - _RETRY_MARGIN)
            logger.info(
                "Holding cursor for %s -> %s at %s so failed entities are retried",
                source_url,
                target_url,
                new_cursor.isoformat(),
            )
        self.cursors.advance(target_url, new_cursor, source=source_url)

        report = SyncReport(
            source=source_url,
            target=target_url,
            started_at=started.isoformat(),
            completed_at=self._clock().isoformat(),
            since=since.isoformat(),
            results=results,
        )
        logger.info(
            "Sync %s -> %s done: %d inserted, %d updated, %d skipped, %d errors",
            source_url,
            target_url,
            len(report.inserted),
            len(report.updated),
            len(report.skipped),
            len(report.errors),
        )
        return report

    def _sweep(
        self,
        ctx: PassContext,
        table: str,
        since: datetime,
        source: Repository,
        target: Repository,
    ) -> tuple[list[SyncResult], datetime | None]:
        """Resolve ids for every changed row of *table*, then write them.

        Returns the results and the ``updated`` time of the oldest row
        that failed, if any did.
        """
        failed: dict[str, SyncResult] = {}
        failed_at: list[datetime] = []

        for entity in self._changed(source, table, since):
            try:
                self._syncer.resolve_id(ctx, table, entity, target)
            except EntitySyncError as exc:
                logger.error(
                    "Failed to resolve id for %s %s: %s",
                    table,
                    entity.id,
                    exc,
                )
                failed[entity.id] = self._failure(
                    table, entity, exc, exc.remote_id
                )
                failed_at.append(entity.updated)

        results: list[SyncResult] = []
        for entity in self._changed(source, table, since):
            if entity.id in failed:
                results.append(failed.pop(entity.id))
                continue
            try:
                results.append(
                    self._syncer.sync(ctx, table, entity, target)
                )
            except Exception as exc:
                logger.exception(
                    "Unexpected error syncing %s %s", table, entity.id
                )
                results.append(self._failure(table, entity, exc))
                failed_at.append(entity.updated)

        # Rows that failed resolution and vanished from the changed set
        results.extend(failed.values())
        return results, min(failed_at, default=None)

    def _changed(
        self, source: Repository, table: str, since: datetime
    ) -> Iterator[SyncEntity]:
        """Yield changed rows page by page, oldest first."""
        after = None
        while True:
            page = source.find_changed_since(
                table, since, limit=self.page_size, after=after
            )
            yield from page
            if len(page) < self.page_size:
                return
            last = page[-1]
            after = (last.updated, last.id)

    @staticmethod
    def _failure(
        table: str,
        entity: SyncEntity,
        exc: BaseException,
        remote_id: str | None = None,
    ) -> SyncResult:
        return SyncResult(
            table=table,
            local_id=entity.id,
            remote_id=remote_id,
            action=SyncAction.SKIP,
            success=False,
            error=str(exc),
        )

    def _target_lock(self, target_url: str) -> threading.Lock:
        with self._locks_guard:
            return self._target_locks.setdefault(
                target_url, threading.Lock()
            )
