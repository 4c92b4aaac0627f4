"""Content repository capability used by the sync engine.

The engine reads changed rows from a source garden and writes them to a
target garden through the ``Repository`` protocol. Two implementations
exist:

- ``GardenClient`` (``core.client``) -- a garden reached over HTTP.
- ``MemoryRepository`` -- an in-process store for same-process syncs,
  fixtures, and tests.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Protocol

from garden_sync.sync.models import (
    TABLE_MODELS,
    SyncEntity,
    as_utc,
)

# Keyset position ``(updated, id)`` of the last row of a page.
PageKey = tuple[datetime, str]


class Repository(Protocol):
    """Read/write access to the synced tables of one garden."""

    def find_changed_since(
        self,
        table: str,
        since: datetime,
        limit: int | None = None,
        after: PageKey | None = None,
    ) -> list[SyncEntity]:
        """Return non-deleted rows with ``updated > since``.

        Rows are ordered by ``(updated, id)``. When *after* is given only
        rows strictly after that keyset position are returned; *limit*
        caps the page length.
        """
        ...  # pragma: no cover

    def find_by_id(self, table: str, entity_id: str) -> SyncEntity | None:
        """Return the row, or ``None`` if absent or soft-deleted."""
        ...  # pragma: no cover

    def exists(self, table: str, entity_id: str) -> bool:
        """Return ``True`` if a non-deleted row with *entity_id* exists."""
        ...  # pragma: no cover

    def upsert(self, table: str, row: SyncEntity) -> None:
        """Insert or replace *row*, keeping its ``created``/``updated``."""
        ...  # pragma: no cover


def check_table(table: str) -> None:
    """Raise ``ValueError`` for tables the engine does not sync."""
    if table not in TABLE_MODELS:
        raise ValueError(
            f"Unknown table '{table}'. Synced tables: {sorted(TABLE_MODELS)}"
        )


class MemoryRepository:
    """Dict-backed repository for one garden.

    Args:
        rows: Optional initial rows per table. Seeding does not count as
            a write.

    Attributes:
        writes: ``(table, id)`` of every ``upsert`` call, in order.
    """

    def __init__(
        self, rows: dict[str, list[SyncEntity]] | None = None
    ) -> None:
        self._tables: dict[str, dict[str, SyncEntity]] = {
            table: {} for table in TABLE_MODELS
        }
        self._lock = threading.Lock()
        self.writes: list[tuple[str, str]] = []
        for table, table_rows in (rows or {}).items():
            for row in table_rows:
                self.add(table, row)

    def add(self, table: str, row: SyncEntity) -> None:
        """Store *row* directly, as if created by the garden itself."""
        check_table(table)
        with self._lock:
            self._tables[table][row.id] = row

    def get(self, table: str, entity_id: str) -> SyncEntity | None:
        """Return the stored row even if it is soft-deleted."""
        check_table(table)
        with self._lock:
            return self._tables[table].get(entity_id)

    def all(self, table: str) -> list[SyncEntity]:
        """Return every stored row of *table*, sorted by id."""
        check_table(table)
        with self._lock:
            return sorted(self._tables[table].values(), key=lambda r: r.id)

    # ------------------------------------------------------------------
    # Repository protocol
    # ------------------------------------------------------------------

    def find_changed_since(
        self,
        table: str,
        since: datetime,
        limit: int | None = None,
        after: PageKey | None = None,
    ) -> list[SyncEntity]:
        check_table(table)
        since = as_utc(since)
        with self._lock:
            rows = [
                r
                for r in self._tables[table].values()
                if r.deleted is None and r.updated > since
            ]
        rows.sort(key=lambda r: (r.updated, r.id))
        if after is not None:
            position = (as_utc(after[0]), after[1])
            rows = [r for r in rows if (r.updated, r.id) > position]
        if limit is not None:
            rows = rows[:limit]
        return rows

    def find_by_id(self, table: str, entity_id: str) -> SyncEntity | None:
        row = self.get(table, entity_id)
        if row is None or row.deleted is not None:
            return None
        return row

    def exists(self, table: str, entity_id: str) -> bool:
        return self.find_by_id(table, entity_id) is not None

    def upsert(self, table: str, row: SyncEntity) -> None:
        check_table(table)
        model = TABLE_MODELS[table]
        if not isinstance(row, model):
            raise TypeError(
                f"Table '{table}' stores {model.__name__}, got {type(row).__name__}"
            )
        with self._lock:
            self._tables[table][row.id] = row
            self.writes.append((table, row.id))
