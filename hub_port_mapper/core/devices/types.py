"""
Device observation records returned by the device scanner.

Observations are read-only snapshots produced fresh on every scan; they have
no identity beyond the key the normalizer derives from them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Protocol

# Product id of the VL822's USB 3.0 (SuperSpeed) hub node.
USB3_PRODUCT_ID = "PID_0822"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class DriveObservation:
    """A USB mass-storage drive as seen by one scan.

    Attributes:
        name: Friendly name of the disk, e.g. "SanDisk Ultra USB Device"
        serial: Serial segment of the USB device instance id
        location: LocationInformation of the USB device, e.g. "Port_#0002.Hub_#0008"
        parent: Instance id of the hub the USB device hangs off (the drive's grandparent)
    """
    name: str
    serial: str
    location: str
    parent: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DriveObservation":
        return cls(
            name=_text(data.get("name")),
            serial=_text(data.get("serial")),
            location=_text(data.get("location")),
            parent=_text(data.get("parent")),
        )

    @property
    def display_name(self) -> str:
        return self.name or "USB Drive"


@dataclass(frozen=True)
class HubObservation:
    """One device node of a hub chip (each VL822 shows up as a 2.0 and a 3.0 node)."""
    name: str
    instance_id: str
    location: str
    parent: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HubObservation":
        return cls(
            name=_text(data.get("name")),
            instance_id=_text(data.get("instanceId")),
            location=_text(data.get("location")),
            parent=_text(data.get("parent")),
        )

    @property
    def display_name(self) -> str:
        return self.name or "VL822 Hub"

    @property
    def is_usb3(self) -> bool:
        return USB3_PRODUCT_ID in self.instance_id.upper()

    @property
    def speed_label(self) -> str:
        return "USB 3.0" if self.is_usb3 else "USB 2.0"


class DeviceSource(Protocol):
    """Anything that can snapshot attached drives and hub nodes."""

    async def get_drives(self) -> List[DriveObservation]:
        ...

    async def get_hubs(self) -> List[HubObservation]:
        ...


def optional_text(value: Optional[str]) -> str:
    """Render an optional topology string for display."""
    return value if value else "N/A"
