"""Identity keys, the port mapper and calibration persistence."""

from .normalizer import (
    KEY_PATTERN,
    extract_chip_prefix,
    extract_port_index,
    normalize_location,
    split_key,
)
from .port_mapper import MAX_PORT, MIN_PORT, PORT_COUNT, PortMapper
from .store import SCHEMA_VERSION, CalibrationDocument, CalibrationStore

__all__ = [
    "KEY_PATTERN",
    "MAX_PORT",
    "MIN_PORT",
    "PORT_COUNT",
    "SCHEMA_VERSION",
    "CalibrationDocument",
    "CalibrationStore",
    "PortMapper",
    "extract_chip_prefix",
    "extract_port_index",
    "normalize_location",
    "split_key",
]
