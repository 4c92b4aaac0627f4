"""Conflict resolution between an incoming entity and the target's copy.

Resolution is whole-entity last-write-wins on ``updated``: the incoming
version replaces the stored one only when it is strictly newer, and ties
keep the stored version so repeated syncs converge instead of
oscillating. There is no field-level merge.

Operators should know that a concurrent edit which does not bump
``updated`` cannot be detected and is lost on the next sync from the
other side.
"""

from __future__ import annotations

import logging
from typing import Protocol

from garden_sync.sync.models import SyncAction, SyncEntity

logger = logging.getLogger(__name__)


class ConflictResolver(Protocol):
    """Protocol that conflict resolvers must satisfy."""

    def resolve(
        self, candidate: SyncEntity, existing: SyncEntity | None
    ) -> SyncAction:
        """Decide what to do with *candidate*.

        Args:
            candidate: The remapped incoming entity.
            existing: The target's current row at the same id, if any.

        Returns:
            ``INSERT``, ``UPDATE`` or ``SKIP``.
        """
        ...  # pragma: no cover


class LastWriteWinsResolver:
    """Apply the incoming entity only if it is strictly newer."""

    def resolve(
        self, candidate: SyncEntity, existing: SyncEntity | None
    ) -> SyncAction:
        if existing is None:
            return SyncAction.INSERT
        if candidate.updated > existing.updated:
            return SyncAction.UPDATE
        logger.debug(
            "Keeping %s: stored version %s is not older than incoming %s",
            existing.id,
            existing.updated.isoformat(),
            candidate.updated.isoformat(),
        )
        return SyncAction.SKIP
