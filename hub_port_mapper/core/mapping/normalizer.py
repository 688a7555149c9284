"""
Key Normalizer - Derives a speed-independent identity key for a hub port.

Windows reports the same physical port under a different hub device node
depending on whether the drive negotiated USB 2.0 or 3.0. Both nodes of one
VL822 chip share the same parent-chain prefix, so the stable identity of a
slot is ``chipPrefix|portIndex``:

    location = "Port_#0002.Hub_#0008"
    parent   = "USB\\VID_2109&PID_0822\\9&238498F1&0&3"
    key      = "9&238498F1|2"

All functions are pure and return ``None`` instead of raising when the raw
strings don't contain what they need.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

KEY_SEPARATOR = "|"

_CHIP_PREFIX_RE = re.compile(r"\\(\d+&[A-F0-9]+)&", re.ASCII | re.IGNORECASE)
_PORT_INDEX_RE = re.compile(r"Port_#(\d+)", re.ASCII | re.IGNORECASE)

# Shared with the calibration store's schema validation.
KEY_PATTERN = re.compile(r"\d+&[A-F0-9]+\|\d+", re.ASCII | re.IGNORECASE)


def extract_chip_prefix(parent: Optional[str]) -> Optional[str]:
    """Return the uppercased ``digits&hex`` segment of a parent instance id."""
    if not parent:
        return None

    match = _CHIP_PREFIX_RE.search(parent)
    return match.group(1).upper() if match else None


def extract_port_index(location: Optional[str]) -> Optional[str]:
    """Return the ``Port_#`` number of a location string without leading zeros."""
    if not location:
        return None

    match = _PORT_INDEX_RE.search(location)
    if not match:
        return None

    return str(int(match.group(1)))


def normalize_location(location: Optional[str], parent: Optional[str]) -> Optional[str]:
    """Build ``chipPrefix|portIndex``, or ``None`` if either part is missing."""
    chip_prefix = extract_chip_prefix(parent)
    port_index = extract_port_index(location)

    # "0" is a legitimate port index, so test for None rather than truthiness
    if chip_prefix is None or port_index is None:
        return None

    return f"{chip_prefix}{KEY_SEPARATOR}{port_index}"


def split_key(key: str) -> Tuple[str, str]:
    """Split an identity key into ``(chip_prefix, port_index)``."""
    chip_prefix, _, port_index = key.partition(KEY_SEPARATOR)
    return chip_prefix, port_index


def is_valid_key(key: object) -> bool:
    return isinstance(key, str) and KEY_PATTERN.fullmatch(key) is not None


__all__ = [
    "KEY_PATTERN",
    "KEY_SEPARATOR",
    "extract_chip_prefix",
    "extract_port_index",
    "is_valid_key",
    "normalize_location",
    "split_key",
]
