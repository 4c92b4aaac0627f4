"""JSON state file persistence shared by the mapping and cursor stores.

State lives in the configured ``state_dir`` (``.garden_sync/`` by
default), one JSON document per store.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Versioned documents** -- each file carries ``version`` so future
  layout changes can be migrated on load.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateFile:
    """Load and atomically save one JSON state document.

    Args:
        path: Location of the JSON file. Its parent directory is created
            on first save.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self, key: str) -> dict[str, Any]:
        """Load the document.

        Args:
            key: Name of the top-level collection in the document.

        Returns:
            The document. A missing file yields ``{"version": 1, key: {}}``.
        """
        if not self.path.exists():
            return {"version": STATE_VERSION, key: {}}
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"State file {self.path} is not a JSON object")
        if data.get("version") != STATE_VERSION:
            raise ValueError(
                f"Unsupported state version {data.get('version')!r} in {self.path}"
            )
        data.setdefault(key, {})
        return data

    def save(self, data: dict[str, Any]) -> None:
        """Persist *data* atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Saved state file %s", self.path)
