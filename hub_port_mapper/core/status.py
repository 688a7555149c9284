"""
Status resolution - Classifies one snapshot of drives against a calibration.

A drive is either mapped to a port, unmapped (slot never calibrated), or a
chip mismatch: calibration exists but none of it belongs to the chip the
drive hangs off, which usually means the hub was moved to another USB
controller and needs recalibrating.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .devices.types import DriveObservation, HubObservation
from .logging_utils import get_module_logger
from .mapping.normalizer import extract_chip_prefix
from .mapping.port_mapper import MAX_PORT, MIN_PORT, PortMapper

logger = get_module_logger("Status")


class DriveClassification(Enum):
    MAPPED = "mapped"
    UNMAPPED = "unmapped"
    CHIP_MISMATCH = "chip_mismatch"


@dataclass(frozen=True)
class DriveResolution:
    drive: DriveObservation
    key: Optional[str]
    port: Optional[int]
    classification: DriveClassification

    @property
    def is_mapped(self) -> bool:
        return self.classification is DriveClassification.MAPPED


@dataclass
class PortSlot:
    port: int
    drive: Optional[DriveObservation] = None

    @property
    def occupied(self) -> bool:
        return self.drive is not None


@dataclass
class StatusReport:
    slots: List[PortSlot]
    unknown: List[DriveResolution] = field(default_factory=list)
    mismatch: bool = False
    mapped_count: int = 0
    calibrated: bool = False
    missing_ports: List[int] = field(default_factory=list)

    def slot(self, port: int) -> PortSlot:
        return self.slots[port - MIN_PORT]

    @property
    def occupied_ports(self) -> List[int]:
        return [slot.port for slot in self.slots if slot.occupied]


def classify_drive(drive: DriveObservation, mapper: PortMapper) -> DriveResolution:
    key = mapper.normalize_location(drive.location, drive.parent)
    port = mapper.get_physical_port(drive.location, drive.parent)

    if port is not None:
        classification = DriveClassification.MAPPED
    elif mapper.get_mapping_count() > 0 and not mapper.is_known_chip(drive.location, drive.parent):
        classification = DriveClassification.CHIP_MISMATCH
    else:
        classification = DriveClassification.UNMAPPED

    return DriveResolution(drive=drive, key=key, port=port, classification=classification)


def resolve_status(drives: Iterable[DriveObservation], mapper: PortMapper) -> StatusReport:
    """Place each drive on the 7-port board or in the unknown list."""
    report = StatusReport(
        slots=[PortSlot(port=port) for port in range(MIN_PORT, MAX_PORT + 1)],
        mapped_count=mapper.get_mapping_count(),
        calibrated=mapper.is_calibrated(),
        missing_ports=mapper.missing_ports(),
    )

    for drive in drives:
        resolution = classify_drive(drive, mapper)
        if resolution.port is not None:
            slot = report.slot(resolution.port)
            if slot.occupied:
                logger.warning(
                    "Port %d reported twice (%s and %s)",
                    resolution.port, slot.drive, drive,
                )
            slot.drive = drive
            continue

        if resolution.classification is DriveClassification.CHIP_MISMATCH:
            report.mismatch = True
        report.unknown.append(resolution)

    logger.debug(
        "Status: %d occupied, %d unknown, mismatch=%s",
        len(report.occupied_ports), len(report.unknown), report.mismatch,
    )
    return report


def summarize_hubs(hubs: Iterable[HubObservation]) -> Dict[str, List[HubObservation]]:
    """Group hub nodes by chip prefix; nodes without one are left out."""
    chips: Dict[str, List[HubObservation]] = {}
    for hub in hubs:
        prefix = extract_chip_prefix(hub.instance_id)
        if prefix is None:
            continue
        chips.setdefault(prefix, []).append(hub)
    return chips


__all__ = [
    "DriveClassification",
    "DriveResolution",
    "PortSlot",
    "StatusReport",
    "classify_drive",
    "resolve_status",
    "summarize_hubs",
]
