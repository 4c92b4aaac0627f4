"""Rewrite identifiers embedded in an entity for its destination garden.

Pure functions: each returns a new model and never touches storage.

A referenced id is replaced when the lookup table knows its destination
id and left unchanged otherwise (the referenced entity needed no remap, or
has not been resolved in this pass).
"""

from __future__ import annotations

from collections.abc import Mapping

from garden_sync.sync.context import PassContext
from garden_sync.sync.models import (
    CRUX_TABLE,
    ENTITY_TYPES,
    PATH_TABLE,
    TABLE_MODELS,
    Crux,
    Path,
    SyncEntity,
)


def _mapped(ids: Mapping[str, str], entity_id: str) -> str:
    return ids.get(entity_id, entity_id)


def remap_crux(
    crux: Crux, remote_id: str, crux_ids: Mapping[str, str]
) -> Crux:
    """Give *crux* its destination id and remap its edges and members."""
    dimensions = [
        d.model_copy(
            update={
                "source_id": _mapped(crux_ids, d.source_id),
                "target_id": _mapped(crux_ids, d.target_id),
            }
        )
        for d in crux.dimensions
    ]
    members = [_mapped(crux_ids, m) for m in crux.members]
    return crux.model_copy(
        update={
            "id": remote_id,
            "dimensions": dimensions,
            "members": members,
        }
    )


def remap_path(
    path: Path,
    remote_id: str,
    crux_ids: Mapping[str, str],
    path_ids: Mapping[str, str],
) -> Path:
    """Give *path* its destination id and remap its entry and markers.

    Markers owned by *path* point at ``remote_id``; marker cruxes and the
    entry crux are remapped through *crux_ids*.
    """

    def _path_ref(path_id: str) -> str:
        if path_id == path.id:
            return remote_id
        return _mapped(path_ids, path_id)

    markers = [
        m.model_copy(
            update={
                "path_id": _path_ref(m.path_id),
                "crux_id": _mapped(crux_ids, m.crux_id),
            }
        )
        for m in path.markers
    ]
    entry = _mapped(crux_ids, path.entry) if path.entry else path.entry
    return path.model_copy(
        update={"id": remote_id, "entry": entry, "markers": markers}
    )


def remap_entity(
    table: str, entity: SyncEntity, remote_id: str, ctx: PassContext
) -> SyncEntity:
    """Remap *entity* of *table* using the lookup tables in *ctx*.

    Raises:
        ValueError: If *table* has no remapper.
        TypeError: If *entity* is not a row of *table*.
    """
    if table not in TABLE_MODELS:
        raise ValueError(f"No remapper for table '{table}'")
    if not isinstance(entity, TABLE_MODELS[table]):
        raise TypeError(
            f"Expected a {TABLE_MODELS[table].__name__} row for '{table}', "
            f"got {type(entity).__name__}"
        )

    crux_ids = ctx.lookup(ENTITY_TYPES[CRUX_TABLE])
    if isinstance(entity, Crux):
        return remap_crux(entity, remote_id, crux_ids)
    return remap_path(
        entity, remote_id, crux_ids, ctx.lookup(ENTITY_TYPES[PATH_TABLE])
    )
