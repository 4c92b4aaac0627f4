"""Exception hierarchy for the sync engine.

Entity-level errors (``EntitySyncError`` and subclasses) are caught by the
engine, logged, and reported per entity; the pass continues. Pass-level
errors (``CursorError``, ``SyncInProgressError``) and ``LegError``
propagate to the caller.
"""

from __future__ import annotations


class GardenSyncError(Exception):
    """Base class for all sync engine errors."""


class EntitySyncError(GardenSyncError):
    """Processing of a single entity failed."""

    def __init__(
        self,
        message: str,
        *,
        local_id: str | None = None,
        remote_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.local_id = local_id
        self.remote_id = remote_id


class MappingError(EntitySyncError):
    """A mapping record could not be read or written."""


class MappingConflictError(MappingError):
    """A mapping would contradict an existing one.

    Raised when a local id is already mapped to a different remote id, or
    a remote id is already claimed by a different local id.
    """


class UpsertError(EntitySyncError):
    """The remapped entity could not be read from or written to the target."""


class CursorError(GardenSyncError):
    """The sync cursor could not be read or advanced."""


class SyncInProgressError(GardenSyncError):
    """Another pass toward the same target is already running."""


class LegError(GardenSyncError):
    """One direction of a bidirectional run failed.

    The underlying exception is available as ``__cause__``.
    """

    def __init__(self, source: str, target: str, cause: BaseException) -> None:
        super().__init__(f"Sync {source} -> {target} failed: {cause}")
        self.source = source
        self.target = target
        self.__cause__ = cause
