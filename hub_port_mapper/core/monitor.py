"""
Drive monitor - Reports drives appearing on and disappearing from the hub.

Every poll takes a fresh snapshot keyed by identity key (serial number when
the topology can't be normalized), diffs it against the previous snapshot and
then replaces the previous snapshot wholesale. Scan failures during polling
are logged and skipped so long-running observation survives hiccups; only the
cancellation token ends the loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from .cancellation import CancellationToken
from .devices.types import DeviceSource, DriveObservation
from .errors import OperationCancelled, ScanError
from .logging_utils import get_module_logger
from .mapping.port_mapper import PortMapper

logger = get_module_logger("DriveMonitor")

Snapshot = Dict[str, DriveObservation]


@dataclass(frozen=True)
class MonitorEvent:
    key: str
    drive: DriveObservation
    port: Optional[int]
    timestamp: datetime


@dataclass
class MonitorDelta:
    appeared: List[MonitorEvent] = field(default_factory=list)
    disappeared: List[MonitorEvent] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.appeared or self.disappeared)


DeltaCallback = Callable[[MonitorDelta], Union[None, Awaitable[None]]]


class DriveMonitor:
    """
    Polls a device source on a fixed period and emits appear/disappear deltas.

    Usage:
        monitor = DriveMonitor(scanner, mapper, token=token, poll_interval=2.0)
        await monitor.prime()
        await monitor.run(on_delta=print_delta)
    """

    DEFAULT_POLL_INTERVAL = 2.0

    def __init__(
        self,
        source: DeviceSource,
        mapper: PortMapper,
        *,
        token: Optional[CancellationToken] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self._source = source
        self._mapper = mapper
        self._token = token or CancellationToken()
        self._poll_interval = poll_interval
        self._snapshot: Snapshot = {}
        self._primed = False

    @property
    def snapshot(self) -> Snapshot:
        return dict(self._snapshot)

    def snapshot_key(self, drive: DriveObservation) -> str:
        key = self._mapper.normalize_location(drive.location, drive.parent)
        return key if key is not None else drive.serial

    def build_snapshot(self, drives: Iterable[DriveObservation]) -> Snapshot:
        return {self.snapshot_key(drive): drive for drive in drives}

    def diff(self, previous: Snapshot, current: Snapshot) -> MonitorDelta:
        now = datetime.now()
        delta = MonitorDelta()

        for key, drive in current.items():
            if key not in previous:
                delta.appeared.append(self._event(key, drive, now))

        for key, drive in previous.items():
            if key not in current:
                delta.disappeared.append(self._event(key, drive, now))

        return delta

    def _event(self, key: str, drive: DriveObservation, timestamp: datetime) -> MonitorEvent:
        port = self._mapper.get_physical_port(drive.location, drive.parent)
        return MonitorEvent(key=key, drive=drive, port=port, timestamp=timestamp)

    async def prime(self) -> Snapshot:
        """Take the initial snapshot; scan failures propagate."""
        drives = await self._source.get_drives()
        self._snapshot = self.build_snapshot(drives)
        self._primed = True
        logger.info("Monitor primed with %d drive(s)", len(self._snapshot))
        return self.snapshot

    async def poll_once(self) -> Optional[MonitorDelta]:
        """Scan and diff once; returns None (snapshot kept) if the scan failed."""
        try:
            drives = await self._source.get_drives()
        except ScanError as exc:
            logger.debug("Ignoring transient scan failure during monitoring: %s", exc)
            return None

        current = self.build_snapshot(drives)
        delta = self.diff(self._snapshot, current)
        self._snapshot = current

        for event in delta.appeared:
            logger.info("Drive appeared: %s (port %s)", event.key, event.port)
        for event in delta.disappeared:
            logger.info("Drive removed: %s (port %s)", event.key, event.port)
        return delta

    async def run(self, on_delta: Optional[DeltaCallback] = None) -> None:
        """Poll until the token is cancelled."""
        if not self._primed:
            await self.prime()

        logger.info("Monitoring every %.1fs", self._poll_interval)
        while await self._token.sleep(self._poll_interval):
            try:
                delta = await self.poll_once()
            except OperationCancelled:
                break
            if delta and on_delta is not None:
                result = on_delta(delta)
                if result is not None:
                    await result
        logger.info("Monitor stopped")


__all__ = ["DeltaCallback", "DriveMonitor", "MonitorDelta", "MonitorEvent", "Snapshot"]
