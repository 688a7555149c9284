"""
PowerShell-backed device scanner.

Enumerates USB drives and VL822 hub nodes through the Windows PnP device tree
and returns them as observation records. Every scan is bounded by a timeout;
a timed-out scan is retried once silently before ScanTimeoutError surfaces.
A missing PowerShell fails immediately with ScanUnavailableError so callers
can tell "retry later" from "this machine cannot scan at all".
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import subprocess
import sys
from typing import Any, Dict, List, Optional, Tuple

from ..cancellation import CancellationToken
from ..errors import OperationCancelled, ScanError, ScanTimeoutError, ScanUnavailableError
from ..logging_utils import get_module_logger
from .types import DriveObservation, HubObservation

logger = get_module_logger("DeviceScanner")

# Windows-specific subprocess flag to hide console window
_SUBPROCESS_FLAGS = subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0

_POWERSHELL_ARGS = (
    "-NoProfile",
    "-NonInteractive",
    "-ExecutionPolicy", "Bypass",
    "-Command",
)

_VENDOR_PLACEHOLDER = "__VENDOR_ID__"

# For each disk whose parent is a USB device: the USB device supplies the
# location (Port_#xxxx.Hub_#yyyy) and serial, the USB device's parent (the
# drive's grandparent) is the hub whose instance id carries the chip prefix.
_DRIVES_SCRIPT = r"""
[Console]::OutputEncoding = [System.Text.Encoding]::UTF8
$ErrorActionPreference = 'SilentlyContinue'
$result = @()
foreach ($disk in Get-PnpDevice -Class DiskDrive -PresentOnly) {
    $usb = (Get-PnpDeviceProperty -InstanceId $disk.InstanceId -KeyName 'DEVPKEY_Device_Parent').Data
    if (-not $usb -or $usb -notlike 'USB\*') { continue }
    $hub = (Get-PnpDeviceProperty -InstanceId $usb -KeyName 'DEVPKEY_Device_Parent').Data
    $location = (Get-PnpDeviceProperty -InstanceId $usb -KeyName 'DEVPKEY_Device_LocationInfo').Data
    $result += [PSCustomObject]@{
        name     = $disk.FriendlyName
        serial   = ($usb -split '\\')[-1]
        location = $location
        parent   = $hub
    }
}
ConvertTo-Json -InputObject @($result) -Compress
"""

_HUBS_SCRIPT = r"""
[Console]::OutputEncoding = [System.Text.Encoding]::UTF8
$ErrorActionPreference = 'SilentlyContinue'
$result = @()
foreach ($dev in Get-PnpDevice -PresentOnly) {
    if ($dev.InstanceId -notlike 'USB\VID___VENDOR_ID__&PID_*') { continue }
    if ($dev.Service -notlike 'usbhub*') { continue }
    $result += [PSCustomObject]@{
        name       = $dev.FriendlyName
        instanceId = $dev.InstanceId
        location   = (Get-PnpDeviceProperty -InstanceId $dev.InstanceId -KeyName 'DEVPKEY_Device_LocationInfo').Data
        parent     = (Get-PnpDeviceProperty -InstanceId $dev.InstanceId -KeyName 'DEVPKEY_Device_Parent').Data
    }
}
ConvertTo-Json -InputObject @($result) -Compress
"""


class PowerShellDeviceScanner:
    """
    Device observation source backed by ``powershell.exe``.

    Usage:
        scanner = PowerShellDeviceScanner(timeout=10.0)
        drives = await scanner.get_drives()
        hubs = await scanner.get_hubs()
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        hub_vendor_id: str = "2109",
        executable: str = "powershell.exe",
        token: Optional[CancellationToken] = None,
    ):
        self._timeout = timeout
        self._hub_vendor_id = hub_vendor_id.upper()
        self._executable = executable
        self._token = token

    @property
    def timeout(self) -> float:
        return self._timeout

    async def get_drives(self) -> List[DriveObservation]:
        """Connected USB mass-storage drives."""
        rows = await self._run_script(_DRIVES_SCRIPT, "drives")
        drives = [DriveObservation.from_dict(row) for row in rows]
        logger.debug("Scan found %d drive(s)", len(drives))
        return drives

    async def get_hubs(self) -> List[HubObservation]:
        """Hub nodes of the configured vendor (both 2.0 and 3.0 variants)."""
        script = _HUBS_SCRIPT.replace(_VENDOR_PLACEHOLDER, self._hub_vendor_id)
        rows = await self._run_script(script, "hubs")
        hubs = [HubObservation.from_dict(row) for row in rows]
        logger.debug("Scan found %d hub node(s)", len(hubs))
        return hubs

    # ------------------------------------------------------------------
    # Execution

    async def _run_script(self, script: str, label: str, retry_on_timeout: bool = True) -> List[Dict[str, Any]]:
        try:
            stdout = await self._execute(script)
        except asyncio.TimeoutError:
            if retry_on_timeout and not self._cancelled:
                logger.warning("%s scan timed out after %.1fs, retrying once", label, self._timeout)
                return await self._run_script(script, label, retry_on_timeout=False)
            raise ScanTimeoutError(
                f"PowerShell {label} scan timed out after {self._timeout:.1f}s"
            ) from None

        return self._parse_output(stdout, label)

    @property
    def _cancelled(self) -> bool:
        return self._token is not None and self._token.cancelled

    async def _execute(self, script: str) -> str:
        """
        Run one PowerShell command.

        Raises asyncio.TimeoutError on timeout and OperationCancelled as soon as
        the token is cancelled; the child process is killed in both cases.
        """
        if self._token is not None:
            self._token.raise_if_cancelled()

        try:
            process = await asyncio.create_subprocess_exec(
                self._executable,
                *_POWERSHELL_ARGS,
                script,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                creationflags=_SUBPROCESS_FLAGS,
            )
        except FileNotFoundError as exc:
            raise ScanUnavailableError(
                "PowerShell not found. Requires Windows PowerShell 5.1"
            ) from exc
        except OSError as exc:
            raise ScanError(f"Failed to start PowerShell: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(self._communicate(process), timeout=self._timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError, OperationCancelled):
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise ScanError(
                f"PowerShell exited with status {process.returncode}: {message or 'no output'}"
            )

        return stdout.decode("utf-8", errors="replace")

    async def _communicate(self, process: asyncio.subprocess.Process) -> Tuple[bytes, bytes]:
        if self._token is None:
            return await process.communicate()

        communicate = asyncio.ensure_future(process.communicate())
        cancelled = asyncio.ensure_future(self._token.wait())
        try:
            await asyncio.wait({communicate, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not communicate.done():
                communicate.cancel()

        if communicate.done() and not communicate.cancelled():
            return communicate.result()

        logger.debug("Scan interrupted, killing PowerShell")
        raise OperationCancelled(self._token.reason or "cancelled")

    @staticmethod
    def _parse_output(stdout: str, label: str) -> List[Dict[str, Any]]:
        trimmed = stdout.strip().lstrip("\ufeff")
        if not trimmed or trimmed == "[]":
            return []

        try:
            result = json.loads(trimmed)
        except json.JSONDecodeError as exc:
            logger.warning("Unparseable %s scan output (%s), treating as empty", label, exc)
            return []

        # ConvertTo-Json returns either a single object or an array
        if isinstance(result, dict):
            return [result]
        if isinstance(result, list):
            return [row for row in result if isinstance(row, dict)]
        return []


__all__ = ["PowerShellDeviceScanner"]
