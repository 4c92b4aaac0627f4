"""Pydantic models for the garden sync engine.

Defines the data contracts shared by all sync modules:

- ``Crux`` / ``Dimension``: content nodes and their typed edges.
- ``Path`` / ``Marker``: ordered collections of cruxes.
- ``MappingRecord`` / ``SyncCursor``: the engine's own bookkeeping rows.
- ``SyncAction``, ``SyncResult``, ``SyncReport``: per-pass outcome.
- ``SyncPhase``, ``SyncOutcome``: verdict of a bidirectional run.

Content models are frozen and keep unknown columns (``extra="allow"``) so
that fields the engine does not interpret travel between gardens intact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

CRUX_TABLE = "cruxes"
PATH_TABLE = "paths"

# Mapping-store entity type for each synced table, in sweep order.
ENTITY_TYPES: dict[str, str] = {
    CRUX_TABLE: "crux",
    PATH_TABLE: "path",
}


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Row(BaseModel):
    """Base for synced rows: id, timestamps, soft-delete marker."""

    id: str
    created: datetime
    updated: datetime
    deleted: datetime | None = None

    model_config = {"frozen": True, "extra": "allow"}

    @field_validator("created", "updated", "deleted")
    @classmethod
    def _normalise_timestamp(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)


# ---------------------------------------------------------------------------
# Content nodes
# ---------------------------------------------------------------------------


class Dimension(BaseModel):
    """Typed directed edge between two cruxes.

    Attributes:
        id: Edge identifier.
        source_id: Crux the edge starts from.
        target_id: Crux the edge points to.
        type: Edge type.
        kind: Optional free-form sub-type.
        weight: Optional edge weight.
        note: Optional annotation.
    """

    id: str
    source_id: str
    target_id: str
    type: Literal["gate", "garden", "growth", "graft"]
    kind: str | None = None
    weight: float | None = None
    note: str | None = None

    model_config = {"frozen": True, "extra": "allow"}


class Crux(_Row):
    """A content node.

    ``members`` is the ordered membership list of a grouping crux; each
    element is a crux id.
    """

    key: str | None = None
    author_id: str | None = None
    title: str | None = None
    data: str | None = None
    type: str | None = None
    kind: str | None = None
    meta: dict[str, Any] | None = None
    dimensions: list[Dimension] = []
    members: list[str] = []


# ---------------------------------------------------------------------------
# Ordered collections
# ---------------------------------------------------------------------------


class Marker(BaseModel):
    """Position of one crux inside a path."""

    id: str
    path_id: str
    crux_id: str
    order: int
    note: str | None = None

    model_config = {"frozen": True, "extra": "allow"}


class Path(_Row):
    """An ordered, named sequence of cruxes starting at ``entry``."""

    key: str | None = None
    slug: str | None = None
    title: str | None = None
    description: str | None = None
    type: Literal["living", "frozen"] | None = None
    visibility: Literal["public", "private", "unlisted"] | None = None
    kind: Literal["guide", "wander"] | None = None
    entry: str | None = None
    author_id: str | None = None
    theme_id: str | None = None
    meta: dict[str, Any] | None = None
    markers: list[Marker] = []


SyncEntity = Union[Crux, Path]

TABLE_MODELS: dict[str, type[_Row]] = {
    CRUX_TABLE: Crux,
    PATH_TABLE: Path,
}


# ---------------------------------------------------------------------------
# Engine bookkeeping
# ---------------------------------------------------------------------------


class MappingRecord(BaseModel):
    """One local-to-remote id correspondence toward one target garden.

    ``source_instance`` is the garden *local_id* belongs to. A record
    without a source applies to every source.
    """

    id: str
    target_instance: str
    source_instance: str | None = None
    entity_type: str
    local_id: str
    remote_id: str
    created: datetime
    updated: datetime

    model_config = {"frozen": True}


class SyncCursor(BaseModel):
    """Watermark of the last successful pass toward a target garden.

    A cursor with ``source_instance`` covers passes from that source; one
    without covers any source that has no cursor of its own.
    """

    target_instance: str
    source_instance: str | None = None
    last_sync: datetime
    created: datetime
    updated: datetime

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Pass results
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """What the engine did with one entity."""

    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


class SyncResult(BaseModel):
    """Result of syncing one entity.

    Attributes:
        table: Source table of the entity.
        local_id: Identifier on the source garden.
        remote_id: Destination identifier, if it was resolved.
        action: Action performed (``SKIP`` when the entity failed).
        success: Whether the entity was processed without error.
        error: Error message if the entity failed.
    """

    table: str
    local_id: str
    remote_id: str | None = None
    action: SyncAction
    success: bool
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one ``reconcile`` pass.

    Attributes:
        source: URL of the garden changes were read from.
        target: URL of the garden changes were written to.
        started_at: ISO 8601 timestamp the pass started (the new cursor).
        completed_at: ISO 8601 timestamp the pass completed.
        since: ISO 8601 cursor the pass read changes after.
        results: Per-entity results in processing order.
    """

    source: str
    target: str
    started_at: str
    completed_at: str | None = None
    since: str | None = None
    results: list[SyncResult] = []

    model_config = {"frozen": True}

    @property
    def inserted(self) -> list[SyncResult]:
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.INSERT
        ]

    @property
    def updated(self) -> list[SyncResult]:
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.UPDATE
        ]

    @property
    def skipped(self) -> list[SyncResult]:
        return [
            r
            for r in self.results
            if r.success and r.action == SyncAction.SKIP
        ]

    @property
    def errors(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """One line per counter, for logs and CLI output."""
        lines = [
            f"Sync pass {self.source} -> {self.target}",
            f"  Inserted: {len(self.inserted)}",
            f"  Updated:  {len(self.updated)}",
            f"  Skipped:  {len(self.skipped)}",
            f"  Errors:   {len(self.errors)}",
            f"  Total:    {len(self.results)}",
        ]
        return "\n".join(lines)


class SyncPhase(str, Enum):
    """States of a bidirectional run."""

    IDLE = "idle"
    SYNCING_A_TO_B = "syncing_a_to_b"
    SYNCING_B_TO_A = "syncing_b_to_a"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    """Single verdict for a bidirectional run.

    ``reports`` holds the pass reports of the legs that completed, so a
    failed run may still list the first leg's writes.
    """

    success: bool
    phase: SyncPhase
    error: BaseException | None = None
    reports: list[SyncReport] = field(default_factory=list)
