"""Per-target sync watermarks.

A cursor records how far the last pass toward a target garden got. The
next pass only reads entities updated after it. A target that has never
been synced reads as the Unix epoch.

Cursors are kept per ``(target, source)`` pair: when the local garden
pulls from several peers, each peer's changes are read from that peer's
own watermark. A cursor advanced without a source applies to every source
that has no cursor of its own.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from garden_sync.sync.errors import CursorError
from garden_sync.sync.models import EPOCH, SyncCursor, as_utc, utc_now
from garden_sync.sync.state import StateFile

logger = logging.getLogger(__name__)

CURSORS_FILE = "cursors.json"


def _row_key(target_instance: str, source: str | None) -> str:
    if source is None:
        return target_instance
    return f"{source} -> {target_instance}"


class CursorStore:
    """Load and advance the ``last_sync`` watermark of each target.

    Args:
        state_dir: Directory holding ``cursors.json``.
        clock: Returns the current UTC time (used for bookkeeping
            timestamps, not for the watermark itself).
    """

    def __init__(
        self,
        state_dir: Path,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._file = StateFile(state_dir / CURSORS_FILE)
        self._clock = clock
        self._lock = threading.Lock()

    def get(
        self, target_instance: str, source: str | None = None
    ) -> SyncCursor | None:
        """Return a stored cursor row, or ``None`` if never synced.

        With *source*, only that source's own row is returned. Without,
        the most advanced row toward *target_instance* is returned.

        Raises:
            CursorError: If the state file cannot be read.
        """
        with self._lock:
            cursors = self._cursors(self._load())
        if source is not None:
            return cursors.get(_row_key(target_instance, source))
        rows = [
            c for c in cursors.values() if c.target_instance == target_instance
        ]
        return max(rows, key=lambda c: c.last_sync, default=None)

    def last_sync(
        self, target_instance: str, source: str | None = None
    ) -> datetime:
        """Return the watermark a pass from *source* starts from.

        Falls back to the target's sourceless row, then to the epoch.
        """
        with self._lock:
            cursors = self._cursors(self._load())
        cursor = cursors.get(_row_key(target_instance, source))
        if cursor is None and source is not None:
            cursor = cursors.get(_row_key(target_instance, None))
        return cursor.last_sync if cursor else EPOCH

    def advance(
        self,
        target_instance: str,
        timestamp: datetime,
        source: str | None = None,
    ) -> SyncCursor:
        """Move the watermark forward to *timestamp*.

        The watermark never moves backwards: an older *timestamp* leaves
        the stored value in place.

        Raises:
            CursorError: If the state file cannot be read or written.
        """
        timestamp = as_utc(timestamp)
        key = _row_key(target_instance, source)
        with self._lock:
            doc = self._load()
            now = self._clock()
            current = self._cursors(doc).get(key)

            if current is None:
                cursor = SyncCursor(
                    target_instance=target_instance,
                    source_instance=source,
                    last_sync=timestamp,
                    created=now,
                    updated=now,
                )
            else:
                if timestamp < current.last_sync:
                    logger.warning(
                        "Refusing to move cursor for %s back from %s to %s",
                        key,
                        current.last_sync.isoformat(),
                        timestamp.isoformat(),
                    )
                    timestamp = current.last_sync
                cursor = current.model_copy(
                    update={"last_sync": timestamp, "updated": now}
                )

            doc["cursors"][key] = cursor.model_dump(mode="json")
            try:
                self._file.save(doc)
            except (OSError, TypeError, ValueError) as exc:
                raise CursorError(
                    f"Could not advance cursor for {key}: {exc}"
                ) from exc

        logger.debug(
            "Advanced cursor for %s to %s",
            key,
            cursor.last_sync.isoformat(),
        )
        return cursor

    def _load(self) -> dict:
        try:
            return self._file.load("cursors")
        except (OSError, ValueError) as exc:
            raise CursorError(
                f"Could not read cursors from {self._file.path}: {exc}"
            ) from exc

    def _cursors(self, doc: dict) -> dict[str, SyncCursor]:
        """Validate every row of *doc*, keyed as stored."""
        try:
            # Rows written before cursors carried their target are keyed by it
            return {
                key: SyncCursor.model_validate({"target_instance": key, **raw})
                for key, raw in doc["cursors"].items()
            }
        except (AttributeError, TypeError, ValueError) as exc:
            raise CursorError(
                f"Malformed cursors in {self._file.path}: {exc}"
            ) from exc
