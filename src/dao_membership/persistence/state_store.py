"""Snapshot state store: JSON file holding the latest registry state.

The event log is the audit trail; the state store is a convenience copy
of the current registry so a restart does not need to replay events.
Writes go to a temporary sibling file first and are then renamed over
the target, so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Optional


class StateStore:
    """Single-file JSON store for registry records."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def save_registry(self, records: dict[str, Any]) -> str:
        """Persist registry records and return their canonical digest."""
        canonical = json.dumps(records, sort_keys=True, ensure_ascii=False)
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        document = {"digest": f"sha256:{digest}", "registry": records}
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False),
            encoding="utf-8",
        )
        tmp_path.replace(self._storage_path)
        return f"sha256:{digest}"

    def load_registry(self) -> Optional[dict[str, Any]]:
        """Load registry records, or None if nothing has been saved.

        Raises ValueError if the stored digest does not match the records.
        """
        if not self._storage_path.exists():
            return None
        document = json.loads(self._storage_path.read_text(encoding="utf-8"))
        records = document["registry"]
        canonical = json.dumps(records, sort_keys=True, ensure_ascii=False)
        expected = "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        if document.get("digest") != expected:
            raise ValueError(
                f"State store integrity check failed: stored "
                f"{document.get('digest')} != computed {expected}"
            )
        return records
