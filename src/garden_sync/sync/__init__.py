"""Bidirectional garden sync engine.

Public API for reconciling content between two autonomous gardens that
may mint colliding identifiers and edit the same entities concurrently.

Architecture
------------
Each direction of a sync is one **pass**. A pass reads the rows changed
on the source since the target's cursor, gives every row a destination
identifier (keeping the original id unless it collides), rewrites the
references embedded in each row, and writes rows that are newer than the
target's copy (whole-entity last-write-wins).

Modules:

- ``engine``    -- ``SyncEngine``: passes and bidirectional runs.
- ``syncer``    -- ``EntitySyncer``: one entity toward one target.
- ``collision`` -- ``CollisionResolver``: destination id resolution.
- ``remapper``  -- pure reference rewriting for cruxes and paths.
- ``resolver``  -- ``LastWriteWinsResolver`` conflict resolution.
- ``mapping``   -- ``MappingStore``: durable id correspondences.
- ``cursor``    -- ``CursorStore``: per-target watermarks.
- ``state``     -- atomic JSON state files.
- ``models``    -- content rows, bookkeeping rows, reports.
- ``reporter``  -- text and JSON report formatting.

Usage example
-------------
::

    from garden_sync.config import load_config
    from garden_sync.sync import SyncEngine, format_outcome

    config = load_config()
    engine = SyncEngine.from_config(config)
    outcome = engine.sync_bidirectional(
        config.garden_url, "https://nursery.example.com"
    )
    print(format_outcome(outcome))
"""

from .cursor import CursorStore
from .engine import SyncEngine
from .errors import (
    CursorError,
    GardenSyncError,
    LegError,
    MappingConflictError,
    MappingError,
    SyncInProgressError,
    UpsertError,
)
from .mapping import MappingStore
from .models import (
    Crux,
    Dimension,
    Marker,
    Path,
    SyncAction,
    SyncOutcome,
    SyncPhase,
    SyncReport,
    SyncResult,
)
from .reporter import (
    format_outcome,
    format_sync_report,
    outcome_to_json,
    report_to_json,
)

__all__ = [
    "Crux",
    "CursorError",
    "CursorStore",
    "Dimension",
    "GardenSyncError",
    "LegError",
    "MappingConflictError",
    "MappingError",
    "MappingStore",
    "Marker",
    "Path",
    "SyncAction",
    "SyncEngine",
    "SyncInProgressError",
    "SyncOutcome",
    "SyncPhase",
    "SyncReport",
    "SyncResult",
    "UpsertError",
    "format_outcome",
    "format_sync_report",
    "outcome_to_json",
    "report_to_json",
]
