"""
Calibration Store - Persists the identity key -> physical port mapping.

Stores a single JSON document, ``calibration.json`` in the working directory
by default. A missing file is the normal "not calibrated" state.

Example content:
{
  "version": "1.0",
  "createdAt": "2025-01-12T09:30:00.000000+00:00",
  "updatedAt": "2025-01-12T09:34:10.000000+00:00",
  "hubInfo": {"primaryChip": "9&238498F1", "secondaryChip": "9&1B2C3D4E"},
  "mappings": {"9&238498F1|1": 1, "9&238498F1|2": 2}
}
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import CorruptionError, PersistenceError, SchemaError
from ..logging_utils import get_module_logger
from ..paths import default_calibration_path
from .normalizer import is_valid_key
from .port_mapper import MAX_PORT, MIN_PORT, is_valid_port

logger = get_module_logger("CalibrationStore")

SCHEMA_VERSION = "1.0"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _empty_hub_info() -> Dict[str, Optional[str]]:
    return {"primaryChip": None, "secondaryChip": None}


@dataclass
class CalibrationDocument:
    """In-memory form of the persisted calibration document."""

    version: str = SCHEMA_VERSION
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    hub_info: Dict[str, Optional[str]] = field(default_factory=_empty_hub_info)
    mappings: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "hubInfo": dict(self.hub_info),
            "mappings": dict(self.mappings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationDocument":
        hub_info = data.get("hubInfo")
        return cls(
            version=data.get("version", SCHEMA_VERSION),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            hub_info=dict(hub_info) if isinstance(hub_info, dict) else _empty_hub_info(),
            mappings=dict(data.get("mappings") or {}),
        )

    @property
    def updated(self) -> Optional[datetime]:
        """``updatedAt`` parsed as a datetime, or None if absent/unparseable."""
        if not self.updated_at:
            return None
        try:
            return datetime.fromisoformat(self.updated_at.replace("Z", "+00:00"))
        except ValueError:
            return None


class CalibrationStore:
    """Reads, validates, writes and deletes the calibration document."""

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else default_calibration_path()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    # ------------------------------------------------------------------
    # Validation

    @staticmethod
    def validate(data: Any) -> None:
        """Raise :class:`SchemaError` unless ``data`` is a valid raw document."""
        if not isinstance(data, dict):
            raise SchemaError("Invalid calibration data: not an object")

        version = data.get("version")
        if version != SCHEMA_VERSION:
            raise SchemaError(
                f"Invalid schema version: expected {SCHEMA_VERSION}, got {version}"
            )

        mappings = data.get("mappings")
        if not isinstance(mappings, dict):
            raise SchemaError("Invalid calibration data: missing mappings object")

        for key, value in mappings.items():
            if not is_valid_key(key):
                raise SchemaError(f"Invalid mapping key format: {key}")
            if not is_valid_port(value):
                raise SchemaError(
                    f"Invalid port value for {key}: must be integer "
                    f"{MIN_PORT}-{MAX_PORT}, got {value!r}"
                )

    # ------------------------------------------------------------------
    # Persistence

    def load(self) -> Optional[CalibrationDocument]:
        """Load the document, or ``None`` if no calibration has been saved.

        Raises:
            CorruptionError: the file is not readable JSON.
            SchemaError: the JSON does not describe a valid document.
        """
        try:
            content = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No calibration file found at %s", self._path)
            return None
        except UnicodeDecodeError as exc:
            raise CorruptionError(f"Corrupted calibration file: {exc}") from exc

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise CorruptionError(f"Corrupted calibration file: invalid JSON - {exc}") from exc

        self.validate(data)
        document = CalibrationDocument.from_dict(data)
        logger.info("Loaded calibration with %d mappings from %s", len(document.mappings), self._path)
        return document

    def save(self, document: CalibrationDocument) -> CalibrationDocument:
        """Fill defaults, validate and atomically write ``document``.

        ``updatedAt`` is always refreshed; ``createdAt`` is only generated when
        missing. Returns the document as written.

        Raises:
            SchemaError: the filled document is invalid.
            PersistenceError: the working directory is not writable.
        """
        now = _now_iso()
        to_save = CalibrationDocument(
            version=SCHEMA_VERSION,
            created_at=document.created_at or now,
            updated_at=now,
            hub_info=dict(document.hub_info) if document.hub_info else {},
            mappings=dict(document.mappings or {}),
        )
        payload = to_save.to_dict()
        self.validate(payload)

        try:
            self._write_atomic(payload)
        except PermissionError as exc:
            raise PersistenceError(
                f"Cannot write calibration file to {self._path.parent}: {exc}"
            ) from exc

        logger.info("Saved calibration with %d mappings to %s", len(to_save.mappings), self._path)
        return to_save

    def _write_atomic(self, payload: Dict[str, Any]) -> None:
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=str(self._path.parent),
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(payload, tmp, indent=2)
                tmp.write("\n")
                tmp.flush()
                os.fsync(tmp.fileno())

            os.replace(tmp_path, self._path)
            tmp_path = None
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except FileNotFoundError:
                    pass

    def clear(self) -> None:
        """Delete the calibration file if it exists."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except PermissionError as exc:
            raise PersistenceError(f"Cannot delete calibration file {self._path}: {exc}") from exc
        logger.info("Cleared calibration file %s", self._path)

    @staticmethod
    def create_empty() -> CalibrationDocument:
        now = _now_iso()
        return CalibrationDocument(
            version=SCHEMA_VERSION,
            created_at=now,
            updated_at=now,
            hub_info=_empty_hub_info(),
            mappings={},
        )


__all__ = ["SCHEMA_VERSION", "CalibrationDocument", "CalibrationStore"]
