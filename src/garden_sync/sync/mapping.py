"""Durable store of local-to-remote identifier correspondences.

Each ``MappingRecord`` says "the entity ``local_id`` of type
``entity_type`` on ``source_instance`` became ``remote_id`` on
``target_instance``". Records are append-only: once written they are
never changed or removed, which keeps repeated syncs idempotent.

A garden that syncs with several peers receives ids from each of them, so
records toward one target are scoped by source. A record written without
a source applies to every source that has no record of its own.

Uniqueness is enforced per ``(target_instance, source_instance,
entity_type)``:

* ``local_id``  -- at most one record; re-recording the same pair is a
  no-op, recording a different ``remote_id`` is a conflict.
* ``remote_id`` -- never claimed by two different local ids.

All reads and writes go through one lock, so concurrent callers for the
same ``local_id`` observe each other's record instead of duplicating it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from garden_sync.keys import KeyMaster
from garden_sync.sync.errors import MappingConflictError, MappingError
from garden_sync.sync.models import MappingRecord, utc_now
from garden_sync.sync.state import StateFile

logger = logging.getLogger(__name__)

MAPPINGS_FILE = "mappings.json"

# (target_instance, source_instance, entity_type, id)
_Key = tuple[str, str | None, str, str]


class MappingStore:
    """Persisted ``(target, source, entity_type, local_id) -> remote_id`` table.

    Queries that take ``source`` match that source's records first and
    fall back to records without a source. Passing ``source=None`` matches
    records of every source.

    Args:
        state_dir: Directory holding ``mappings.json``.
        key_master: Mints record identifiers.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        state_dir: Path,
        key_master: KeyMaster | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._file = StateFile(state_dir / MAPPINGS_FILE)
        self._keys = key_master or KeyMaster()
        self._clock = clock
        self._lock = threading.Lock()
        self._doc: dict | None = None
        self._by_local: dict[_Key, MappingRecord] = {}
        self._by_remote: dict[_Key, MappingRecord] = {}
        self._claimed: set[tuple[str, str, str]] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(
        self,
        target_instance: str,
        entity_type: str,
        local_id: str,
        source: str | None = None,
    ) -> str | None:
        """Return the recorded remote id, or ``None`` if unmapped."""
        with self._lock:
            self._ensure_loaded()
            if source is None:
                records = self._matching(target_instance, entity_type, None)
                record = next(
                    (r for r in records if r.local_id == local_id), None
                )
            else:
                record = self._find_local(
                    target_instance, source, entity_type, local_id
                )
        return record.remote_id if record else None

    def load(
        self,
        target_instance: str,
        entity_type: str,
        source: str | None = None,
    ) -> dict[str, str]:
        """Return every ``local_id -> remote_id`` pair for one target and type.

        Records of *source* override records without a source. The result
        is a fresh dict; mutating it does not touch the store.
        """
        with self._lock:
            self._ensure_loaded()
            records = self._matching(target_instance, entity_type, source)
        # Unscoped records first so scoped ones win
        records.sort(key=lambda r: r.source_instance is not None)
        return {r.local_id: r.remote_id for r in records}

    def is_claimed(
        self, target_instance: str, entity_type: str, remote_id: str
    ) -> bool:
        """Return ``True`` if any source already maps a local id to
        *remote_id* on *target_instance*."""
        with self._lock:
            self._ensure_loaded()
            return (target_instance, entity_type, remote_id) in self._claimed

    def records(
        self,
        target_instance: str | None = None,
        source: str | None = None,
    ) -> list[MappingRecord]:
        """Return stored records, optionally filtered by target and source."""
        with self._lock:
            self._ensure_loaded()
            return [
                r
                for r in self._by_local.values()
                if (
                    target_instance is None
                    or r.target_instance == target_instance
                )
                and (source is None or r.source_instance == source)
            ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(
        self,
        target_instance: str,
        entity_type: str,
        local_id: str,
        remote_id: str,
        source: str | None = None,
    ) -> MappingRecord:
        """Persist a correspondence, or return the identical existing one.

        Raises:
            MappingConflictError: If *local_id* already maps elsewhere, or
                *remote_id* is claimed by another local id.
            MappingError: If the record could not be persisted.
        """
        with self._lock:
            doc = self._ensure_loaded()

            existing = self._find_local(
                target_instance, source, entity_type, local_id
            )
            if existing is not None:
                if existing.remote_id == remote_id:
                    return existing
                raise MappingConflictError(
                    f"{entity_type} {local_id!r} is already mapped to "
                    f"{existing.remote_id!r} on {target_instance}",
                    local_id=local_id,
                    remote_id=remote_id,
                )

            owner = self._find_remote(
                target_instance, source, entity_type, remote_id
            )
            if owner is not None:
                raise MappingConflictError(
                    f"Remote {entity_type} {remote_id!r} on {target_instance} "
                    f"is already claimed by {owner.local_id!r}",
                    local_id=local_id,
                    remote_id=remote_id,
                )

            now = self._clock()
            record = MappingRecord(
                id=self._keys.generate_id(),
                target_instance=target_instance,
                source_instance=source,
                entity_type=entity_type,
                local_id=local_id,
                remote_id=remote_id,
                created=now,
                updated=now,
            )

            doc["mappings"][record.id] = record.model_dump(mode="json")
            try:
                self._file.save(doc)
            except (OSError, TypeError, ValueError) as exc:
                del doc["mappings"][record.id]
                raise MappingError(
                    f"Could not persist mapping {local_id!r} -> {remote_id!r}: {exc}",
                    local_id=local_id,
                    remote_id=remote_id,
                ) from exc

            self._index(record)

        logger.debug(
            "Recorded %s mapping %s -> %s for %s (from %s)",
            entity_type,
            local_id,
            remote_id,
            target_instance,
            source or "any source",
        )
        return record

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> dict:
        """Read the state file on first use and return the document."""
        if self._doc is not None:
            return self._doc
        try:
            doc = self._file.load("mappings")
            records = [
                MappingRecord.model_validate(raw)
                for raw in doc["mappings"].values()
            ]
        except (OSError, ValueError) as exc:
            raise MappingError(
                f"Could not load mappings from {self._file.path}: {exc}"
            ) from exc
        for record in records:
            self._index(record)
        self._doc = doc
        logger.debug(
            "Loaded %d mappings from %s",
            len(self._by_local),
            self._file.path,
        )
        return doc

    def _find_local(
        self,
        target_instance: str,
        source: str | None,
        entity_type: str,
        local_id: str,
    ) -> MappingRecord | None:
        record = self._by_local.get(
            (target_instance, source, entity_type, local_id)
        )
        if record is None and source is not None:
            record = self._by_local.get(
                (target_instance, None, entity_type, local_id)
            )
        return record

    def _find_remote(
        self,
        target_instance: str,
        source: str | None,
        entity_type: str,
        remote_id: str,
    ) -> MappingRecord | None:
        record = self._by_remote.get(
            (target_instance, source, entity_type, remote_id)
        )
        if record is None and source is not None:
            record = self._by_remote.get(
                (target_instance, None, entity_type, remote_id)
            )
        return record

    def _matching(
        self,
        target_instance: str,
        entity_type: str,
        source: str | None,
    ) -> list[MappingRecord]:
        return [
            r
            for (target, rsource, etype, _), r in self._by_local.items()
            if target == target_instance
            and etype == entity_type
            and (source is None or rsource is None or rsource == source)
        ]

    def _index(self, record: MappingRecord) -> None:
        scope = (
            record.target_instance,
            record.source_instance,
            record.entity_type,
        )
        self._by_local[(*scope, record.local_id)] = record
        self._by_remote[(*scope, record.remote_id)] = record
        self._claimed.add(
            (record.target_instance, record.entity_type, record.remote_id)
        )
