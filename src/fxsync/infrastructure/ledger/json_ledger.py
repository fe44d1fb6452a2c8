"""JSON-file Ledger implementation.

The ledger is a single document mapping ``"{type}:{name}"`` keys to
``ArtifactRecord`` objects in camelCase::

    {
      "function:calcTax": {"type": "function", "apiName": "calcTax__c", ...},
      "component:orderCard": {...}
    }

Every write re-reads and rewrites the whole document.  Implements the
``Ledger`` port from ``fxsync.domain.ports``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from fxsync.core.exceptions import LedgerError
from fxsync.domain.entities import ArtifactRecord
from fxsync.domain.enums import ArtifactType
from fxsync.domain.rules import ledger_key

logger = structlog.get_logger(__name__)

DEFAULT_LEDGER_FILENAME = "unchangeableJson.json"


def locate_ledger(
    start_dir: Path,
    project_root: Path,
    filename: str = DEFAULT_LEDGER_FILENAME,
    depth: int = 4,
) -> Path:
    """Find the ledger for an artifact living in *start_dir*.

    Checks *start_dir* and up to *depth* parents for *filename*; falls back
    to ``project_root / filename`` when none is found.
    """
    current = Path(start_dir).resolve()
    for _ in range(depth + 1):
        candidate = current / filename
        if candidate.is_file():
            return candidate
        if current.parent == current:
            break
        current = current.parent
    return Path(project_root) / filename


class JsonLedger:
    """Ledger persisted as one pretty-printed JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Raw document
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerError(f"Cannot read ledger: {e}", details={"path": str(self._path)}) from e
        if not isinstance(data, dict):
            raise LedgerError("Ledger root is not an object", details={"path": str(self._path)})
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise LedgerError(f"Cannot write ledger: {e}", details={"path": str(self._path)}) from e

    # ------------------------------------------------------------------
    # Ledger port
    # ------------------------------------------------------------------

    def get(self, key: str) -> ArtifactRecord | None:
        raw = self._read().get(key)
        if raw is None:
            return None
        try:
            return ArtifactRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning("ledger.record.invalid", key=key, error=str(e))
            return None

    def put(self, key: str, record: ArtifactRecord) -> None:
        data = self._read()
        data[key] = record.dump()
        self._write(data)

    def find(
        self,
        artifact_type: ArtifactType,
        name: str,
        api_name: str | None = None,
    ) -> ArtifactRecord | None:
        """Look up by ``type:name``, then by the raw *api_name* as key."""
        record = self.get(ledger_key(artifact_type, name))
        if record is None and api_name:
            record = self.get(api_name)
        return record

    def patch_update_time(self, key: str, value: int) -> None:
        data = self._read()
        if key not in data or not isinstance(data[key], dict):
            raise LedgerError(f"No ledger record for {key}", details={"path": str(self._path)})
        data[key]["updateTime"] = value
        self._write(data)

    def keys(self) -> list[str]:
        return list(self._read())
