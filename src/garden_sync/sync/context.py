"""Per-pass state threaded through every step of one ``reconcile`` call."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PassContext:
    """Identifier lookup tables for one pass toward one target.

    Each pass builds its own context, so passes toward different targets
    never share lookup state.

    Attributes:
        source: URL of the garden being read.
        target: URL of the garden being written.
        lookups: ``entity_type -> {local_id: remote_id}``, preloaded from
            the mapping store and extended as ids are resolved.
    """

    source: str
    target: str
    lookups: dict[str, dict[str, str]] = field(default_factory=dict)

    def lookup(self, entity_type: str) -> dict[str, str]:
        """Return the mutable lookup table for *entity_type*."""
        return self.lookups.setdefault(entity_type, {})
