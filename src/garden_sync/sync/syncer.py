"""Sync one entity from the source garden to the target garden.

Steps, in order:

1. Resolve the destination id (``CollisionResolver``).
2. Read the target's current row at the destination id.
3. Remap embedded references (``remapper``). An entity that moved to a
   minted id also gets a fresh display key, or keeps the one its earlier
   copy on the target already has.
4. Let the ``ConflictResolver`` choose insert, update or skip, and upsert
   the remapped entity with its source ``created``/``updated`` intact.

Every failure is confined to the entity: the returned ``SyncResult``
carries the error and the caller moves on to the next entity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from garden_sync.keys import KeyMaster
from garden_sync.sync.collision import CollisionResolver
from garden_sync.sync.context import PassContext
from garden_sync.sync.errors import EntitySyncError, UpsertError
from garden_sync.sync.models import SyncAction, SyncEntity, SyncResult
from garden_sync.sync.remapper import remap_entity
from garden_sync.sync.resolver import ConflictResolver, LastWriteWinsResolver

if TYPE_CHECKING:
    from garden_sync.core.repository import Repository

logger = logging.getLogger(__name__)


class EntitySyncer:
    """Apply one source entity to one target garden.

    Args:
        collisions: Destination id resolver.
        resolver: Conflict resolver (last-write-wins by default).
        key_master: Mints display keys for entities given a new id.
    """

    def __init__(
        self,
        collisions: CollisionResolver,
        resolver: ConflictResolver | None = None,
        key_master: KeyMaster | None = None,
    ) -> None:
        self._collisions = collisions
        self._resolver = resolver or LastWriteWinsResolver()
        self._keys = key_master or KeyMaster()

    def resolve_id(
        self,
        ctx: PassContext,
        table: str,
        entity: SyncEntity,
        target: Repository,
    ) -> str:
        """Resolve and record *entity*'s destination id without writing it.

        Raises:
            MappingError: If the id cannot be resolved or recorded.
        """
        return self._collisions.resolve(ctx, table, entity.id, target)

    def sync(
        self,
        ctx: PassContext,
        table: str,
        entity: SyncEntity,
        target: Repository,
    ) -> SyncResult:
        """Sync *entity* and report what happened.

        Returns:
            A ``SyncResult``; ``success`` is ``False`` when a mapping or
            upsert error stopped the entity.
        """
        remote_id: str | None = None
        try:
            remote_id = self.resolve_id(ctx, table, entity, target)
            action = self._apply(ctx, table, entity, remote_id, target)
        except EntitySyncError as exc:
            logger.error(
                "Failed to sync %s %s -> %s on %s: %s",
                table,
                entity.id,
                exc.remote_id or remote_id,
                ctx.target,
                exc,
            )
            return SyncResult(
                table=table,
                local_id=entity.id,
                remote_id=exc.remote_id or remote_id,
                action=SyncAction.SKIP,
                success=False,
                error=str(exc),
            )

        return SyncResult(
            table=table,
            local_id=entity.id,
            remote_id=remote_id,
            action=action,
            success=True,
        )

    def _apply(
        self,
        ctx: PassContext,
        table: str,
        entity: SyncEntity,
        remote_id: str,
        target: Repository,
    ) -> SyncAction:
        try:
            existing = target.find_by_id(table, remote_id)
        except Exception as exc:
            raise UpsertError(
                f"Could not read current {table} row {remote_id!r}: {exc}",
                local_id=entity.id,
                remote_id=remote_id,
            ) from exc

        remapped = remap_entity(table, entity, remote_id, ctx)
        if remote_id != entity.id and remapped.key:
            # Display keys are unique per garden
            key = existing.key if existing is not None else None
            remapped = remapped.model_copy(
                update={"key": key or self._keys.generate_key()}
            )

        action = self._resolver.resolve(remapped, existing)
        if action == SyncAction.SKIP:
            logger.debug(
                "Skipped %s %s: target version is not older",
                table,
                remote_id,
            )
            return action

        try:
            target.upsert(table, remapped)
        except Exception as exc:
            raise UpsertError(
                f"Could not write {table} row {remote_id!r}: {exc}",
                local_id=entity.id,
                remote_id=remote_id,
            ) from exc

        logger.debug(
            "Synced %s %s -> %s (%s)",
            table,
            entity.id,
            remote_id,
            action.value,
        )
        return action
