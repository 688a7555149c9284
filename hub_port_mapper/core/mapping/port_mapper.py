"""
Port Mapper - In-memory identity key -> physical port lookups.

The mapper owns a private copy of the calibration mapping for the duration of
one command. Lookups never raise: anything that fails to normalize is simply
"not mapped". Only :meth:`PortMapper.add_mapping` raises.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from ..errors import InvalidPortError, NormalizationError
from ..logging_utils import get_module_logger
from . import normalizer

if TYPE_CHECKING:
    from .store import CalibrationDocument

logger = get_module_logger("PortMapper")

MIN_PORT = 1
MAX_PORT = 7
PORT_COUNT = MAX_PORT - MIN_PORT + 1


def is_valid_port(value: object) -> bool:
    """True for an int (not bool) in ``MIN_PORT..MAX_PORT``."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_PORT <= value <= MAX_PORT
    )


class PortMapper:
    """
    Resolves raw device topology strings to physical port numbers.

    Usage:
        mapper = PortMapper.from_document(store.load())
        port = mapper.get_physical_port(drive.location, drive.parent)
    """

    def __init__(self, mappings: Optional[Mapping[str, int]] = None):
        self._mappings: Dict[str, int] = dict(mappings or {})

    @classmethod
    def from_document(cls, document: Optional["CalibrationDocument"]) -> "PortMapper":
        """Wrap a loaded calibration document; ``None`` gives an empty mapper."""
        if document is None:
            return cls()
        return cls(document.mappings)

    # ------------------------------------------------------------------
    # Normalization pass-throughs

    @staticmethod
    def extract_chip_prefix(parent: Optional[str]) -> Optional[str]:
        return normalizer.extract_chip_prefix(parent)

    @staticmethod
    def normalize_location(location: Optional[str], parent: Optional[str]) -> Optional[str]:
        return normalizer.normalize_location(location, parent)

    # ------------------------------------------------------------------
    # Lookups

    def get_physical_port(self, location: Optional[str], parent: Optional[str]) -> Optional[int]:
        """Physical port (1-7) for a device, or ``None`` if unknown."""
        key = normalizer.normalize_location(location, parent)
        if key is None:
            return None
        return self._mappings.get(key)

    def has_mapping(self, location: Optional[str], parent: Optional[str]) -> bool:
        key = normalizer.normalize_location(location, parent)
        return key is not None and key in self._mappings

    def get_existing_port(self, location: Optional[str], parent: Optional[str]) -> Optional[int]:
        return self.get_physical_port(location, parent)

    def is_known_chip(self, location: Optional[str], parent: Optional[str]) -> bool:
        """
        Check whether any mapping belongs to the chip this device hangs off.

        A device on an unknown chip while mappings exist means the hub was
        moved to another controller (calibration mismatch) rather than a
        single slot never having been calibrated.
        """
        chip_prefix = normalizer.extract_chip_prefix(parent)
        if chip_prefix is None:
            return False

        needle = chip_prefix + normalizer.KEY_SEPARATOR
        return any(key.startswith(needle) for key in self._mappings)

    # ------------------------------------------------------------------
    # Mutation

    def add_mapping(self, location: Optional[str], parent: Optional[str], physical_port: int) -> str:
        """
        Map the slot identified by ``location``/``parent`` to ``physical_port``.

        Overwrites any previous port for the same key.

        Returns:
            The identity key that was written.

        Raises:
            NormalizationError: no identity key can be derived.
            InvalidPortError: ``physical_port`` is not an int in 1-7.
        """
        key = normalizer.normalize_location(location, parent)
        if key is None:
            raise NormalizationError(
                "Cannot normalize location - invalid location or parent data "
                f"(location={location!r}, parent={parent!r})"
            )

        if not is_valid_port(physical_port):
            raise InvalidPortError(
                f"Physical port must be integer {MIN_PORT}-{MAX_PORT}, got {physical_port!r}"
            )

        previous = self._mappings.get(key)
        self._mappings[key] = physical_port
        if previous is not None and previous != physical_port:
            logger.info("Remapped %s: port %d -> %d", key, previous, physical_port)
        else:
            logger.debug("Mapped %s -> port %d", key, physical_port)
        return key

    # ------------------------------------------------------------------
    # Queries

    def is_calibrated(self) -> bool:
        """True once at least one mapping per physical port exists (count based)."""
        return len(self._mappings) >= PORT_COUNT

    def missing_ports(self) -> List[int]:
        """Port numbers with no key mapped to them."""
        covered = set(self._mappings.values())
        return [port for port in range(MIN_PORT, MAX_PORT + 1) if port not in covered]

    def get_mapping_count(self) -> int:
        return len(self._mappings)

    def get_all_mappings(self) -> Dict[str, int]:
        return dict(self._mappings)

    def get_known_chips(self) -> List[str]:
        """Distinct chip prefixes across all keys, in first-seen order."""
        chips: Dict[str, None] = {}
        for key in self._mappings:
            chip_prefix, _ = normalizer.split_key(key)
            chips.setdefault(chip_prefix, None)
        return list(chips)

    def __repr__(self) -> str:
        return f"PortMapper({self.get_mapping_count()} mappings)"


__all__ = ["MAX_PORT", "MIN_PORT", "PORT_COUNT", "PortMapper", "is_valid_port"]
