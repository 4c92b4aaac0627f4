"""Destination identifier resolution.

Decides which identifier an entity will have on the target garden:

1. A known mapping (pass lookup table, then the mapping store) wins.
2. Otherwise the local id is kept when it is free on the target.
3. If the id is taken, a fresh UUID is minted.

"Taken" means the target holds a non-deleted row with that id, or the
mapping store already assigned that remote id to another entity. New
correspondences are recorded in both directions: forward under the
target, and reversed under the source so the return leg of a
bidirectional run recognises the entity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from garden_sync.keys import KeyMaster
from garden_sync.sync.context import PassContext
from garden_sync.sync.errors import MappingError
from garden_sync.sync.mapping import MappingStore
from garden_sync.sync.models import ENTITY_TYPES

if TYPE_CHECKING:
    from garden_sync.core.repository import Repository

logger = logging.getLogger(__name__)

MAX_MINT_ATTEMPTS = 5


class CollisionResolver:
    """Resolve and record destination ids for one target garden.

    Args:
        mappings: The durable mapping store.
        key_master: Mints replacement ids on collision.
    """

    def __init__(
        self,
        mappings: MappingStore,
        key_master: KeyMaster | None = None,
    ) -> None:
        self._mappings = mappings
        self._keys = key_master or KeyMaster()

    def resolve(
        self,
        ctx: PassContext,
        table: str,
        local_id: str,
        target: Repository,
    ) -> str:
        """Return the destination id of *local_id*, recording it if new.

        Updates ``ctx``'s lookup table for the table's entity type.

        Raises:
            MappingError: If the mapping cannot be read, checked, or
                recorded.
        """
        entity_type = ENTITY_TYPES[table]
        lookup = ctx.lookup(entity_type)

        known = lookup.get(local_id)
        if known is not None:
            return known

        remote_id: str | None = None
        try:
            remote_id = self._mappings.lookup(
                ctx.target, entity_type, local_id, source=ctx.source
            )
            if remote_id is None:
                remote_id = self._choose_remote_id(
                    ctx, table, entity_type, local_id, target
                )
            self._record(ctx, entity_type, local_id, remote_id)
        except MappingError:
            raise
        except Exception as exc:
            raise MappingError(
                f"Could not resolve {entity_type} {local_id!r} for {ctx.target}: {exc}",
                local_id=local_id,
                remote_id=remote_id,
            ) from exc

        lookup[local_id] = remote_id
        return remote_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _choose_remote_id(
        self,
        ctx: PassContext,
        table: str,
        entity_type: str,
        local_id: str,
        target: Repository,
    ) -> str:
        if not self._is_taken(ctx, table, entity_type, local_id, target):
            logger.debug("No collision, keeping id %s", local_id)
            return local_id

        for _ in range(MAX_MINT_ATTEMPTS):
            candidate = self._keys.generate_id()
            if not self._is_taken(
                ctx, table, entity_type, candidate, target
            ):
                logger.info(
                    "ID collision on %s for %s %s, using new id %s",
                    ctx.target,
                    entity_type,
                    local_id,
                    candidate,
                )
                return candidate

        raise MappingError(
            f"Could not mint a free id for {entity_type} {local_id!r} "
            f"after {MAX_MINT_ATTEMPTS} attempts",
            local_id=local_id,
        )

    def _is_taken(
        self,
        ctx: PassContext,
        table: str,
        entity_type: str,
        candidate: str,
        target: Repository,
    ) -> bool:
        if self._mappings.is_claimed(ctx.target, entity_type, candidate):
            return True
        return target.exists(table, candidate)

    def _record(
        self,
        ctx: PassContext,
        entity_type: str,
        local_id: str,
        remote_id: str,
    ) -> None:
        self._mappings.record(
            ctx.target, entity_type, local_id, remote_id, source=ctx.source
        )
        self._mappings.record(
            ctx.source, entity_type, remote_id, local_id, source=ctx.target
        )
