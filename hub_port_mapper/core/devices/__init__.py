"""Device observation records and the PowerShell scanner."""

from .scanner import PowerShellDeviceScanner
from .types import DeviceSource, DriveObservation, HubObservation

__all__ = [
    "DeviceSource",
    "DriveObservation",
    "HubObservation",
    "PowerShellDeviceScanner",
]
