"""
Calibration Procedure - Interactive 7-step port calibration.

The operator inserts one reference drive into each physical port in turn; each
step scans, resolves the drive's identity key and maps it to the current port.

State flow:
    INIT -> CONFIRM_OVERWRITE (existing calibration) -> INSTRUCTIONS
         -> PER_STEP (ports 1..7) -> SAVE -> SUMMARY -> DONE
    Declining the overwrite or the start leads to CANCELLED.

A failed step (no drive, ambiguous drives, remap declined, unmappable
topology) leaves that port unmapped and the procedure continues. Scan
failures abort the whole run. The accumulated mapping is saved even when
incomplete; completeness is reported, never enforced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..cancellation import CancellationToken
from ..errors import CorruptionError, InvalidPortError, NormalizationError, SchemaError
from ..logging_utils import get_module_logger
from ..devices.types import DeviceSource, DriveObservation
from ..mapping.port_mapper import MAX_PORT, MIN_PORT, PORT_COUNT, PortMapper
from ..mapping.store import CalibrationDocument, CalibrationStore
from .prompts import Prompter, declined

logger = get_module_logger("Calibration")

SKIP_ANSWER = "skip"


class CalibrationState(Enum):
    INIT = "init"
    CONFIRM_OVERWRITE = "confirm_overwrite"
    INSTRUCTIONS = "instructions"
    PER_STEP = "per_step"
    SAVE = "save"
    SUMMARY = "summary"
    CANCELLED = "cancelled"
    DONE = "done"


@dataclass
class CalibrationResult:
    """Outcome of one calibration run."""
    state: CalibrationState
    document: Optional[CalibrationDocument] = None
    mapped: Dict[int, str] = field(default_factory=dict)    # port -> key
    skipped: List[int] = field(default_factory=list)
    missing_ports: List[int] = field(default_factory=list)
    complete: bool = False

    @property
    def cancelled(self) -> bool:
        return self.state is CalibrationState.CANCELLED

    @property
    def mapped_count(self) -> int:
        return len(self.document.mappings) if self.document else 0


class CalibrationProcedure:
    """
    Drives the calibration wizard against an injected scanner and prompter.

    Usage:
        procedure = CalibrationProcedure(store, scanner, prompter, token=token)
        result = await procedure.run()
        if result.complete:
            ...
    """

    def __init__(
        self,
        store: CalibrationStore,
        source: DeviceSource,
        prompter: Prompter,
        *,
        token: Optional[CancellationToken] = None,
        max_attempts: int = 3,
        scan_settle_delay: float = 1.0,
        removal_settle_delay: float = 0.5,
    ):
        self._store = store
        self._source = source
        self._prompter = prompter
        self._token = token or CancellationToken()
        self._max_attempts = max(1, max_attempts)
        self._scan_settle_delay = scan_settle_delay
        self._removal_settle_delay = removal_settle_delay

        self.state = CalibrationState.INIT
        self._mapper = PortMapper()
        self._mapped: Dict[int, str] = {}
        self._skipped: List[int] = []

    @property
    def mapper(self) -> PortMapper:
        return self._mapper

    async def run(self) -> CalibrationResult:
        """Run the wizard to DONE or CANCELLED.

        Raises:
            ScanError: a device scan failed (fatal to the run).
            PersistenceError: the calibration could not be saved.
            OperationCancelled: the operator interrupted the run.
        """
        self._enter(CalibrationState.INIT)
        if not await self._check_existing():
            return self._cancel()

        self._enter(CalibrationState.INSTRUCTIONS)
        if not await self._show_instructions():
            return self._cancel()

        document = self._store.create_empty()
        self._mapper = PortMapper()

        self._enter(CalibrationState.PER_STEP)
        for port in range(MIN_PORT, MAX_PORT + 1):
            self._token.raise_if_cancelled()
            key = await self._calibrate_port(port)
            if key is None:
                self._skipped.append(port)
            else:
                self._mapped[port] = key

        self._enter(CalibrationState.SAVE)
        saved = self._save(document)

        self._enter(CalibrationState.SUMMARY)
        self._show_summary()

        self._enter(CalibrationState.DONE)
        return CalibrationResult(
            state=self.state,
            document=saved,
            mapped=dict(self._mapped),
            skipped=sorted(self._skipped),
            missing_ports=self._mapper.missing_ports(),
            complete=self._mapper.is_calibrated(),
        )

    # ------------------------------------------------------------------
    # Phases

    def _enter(self, state: CalibrationState) -> None:
        self.state = state
        logger.debug("Calibration state: %s", state.name)

    def _cancel(self) -> CalibrationResult:
        self._enter(CalibrationState.CANCELLED)
        self._prompter.line("Calibration cancelled.")
        logger.info("Calibration cancelled by operator")
        return CalibrationResult(state=self.state)

    async def _check_existing(self) -> bool:
        """Return False if the operator refuses to overwrite a calibration."""
        try:
            existing = self._store.load()
        except CorruptionError as exc:
            logger.warning("Existing calibration is corrupted: %s", exc)
            self._prompter.warn("\nExisting calibration file is corrupted. Starting fresh.")
            self._store.clear()
            return True
        except SchemaError as exc:
            logger.warning("Existing calibration is invalid: %s", exc)
            self._prompter.warn(f"\nExisting calibration file is invalid ({exc}). Starting fresh.")
            return True

        if existing is None:
            return True

        self._enter(CalibrationState.CONFIRM_OVERWRITE)
        count = len(existing.mappings)
        self._prompter.warn(f"\nExisting calibration found ({count}/{PORT_COUNT} ports mapped).")
        answer = await self._prompter.ask("Overwrite? (Y/n): ")
        return not declined(answer)

    async def _show_instructions(self) -> bool:
        self._prompter.line("\nInstructions:")
        self._prompter.line("1. Use ONE USB flash drive for the entire calibration")
        self._prompter.line(f"2. You will insert it into each port ({MIN_PORT}-{MAX_PORT}) one at a time")
        self._prompter.line("3. Wait for the prompt before moving to the next port")
        self._prompter.line("")
        answer = await self._prompter.ask("Ready to begin? (Y/n): ")
        return not declined(answer)

    async def _calibrate_port(self, port: int) -> Optional[str]:
        """Run one step; return the key mapped to ``port`` or None if skipped."""
        self._prompter.line("")
        self._prompter.info(f"─── Port {port} of {MAX_PORT} ───")
        await self._prompter.ask(f"Insert USB drive into PORT {port}, then press ENTER...")

        self._prompter.line("Scanning...")
        await self._settle(self._scan_settle_delay)

        drive = await self._detect_single_drive(port)
        if drive is None:
            return None

        key = await self._map_drive(port, drive)

        # Keeps the next step's scan from seeing this drive again
        if port < MAX_PORT:
            await self._prompter.ask("Remove the drive, then press ENTER...")
            await self._settle(self._removal_settle_delay)

        return key

    async def _detect_single_drive(self, port: int) -> Optional[DriveObservation]:
        drives: List[DriveObservation] = []
        for attempt in range(1, self._max_attempts + 1):
            self._token.raise_if_cancelled()
            drives = await self._source.get_drives()
            logger.debug("Port %d attempt %d: %d drive(s) observed", port, attempt, len(drives))

            if len(drives) == 1:
                return drives[0]

            if attempt == self._max_attempts:
                break

            if not drives:
                self._prompter.warn("No USB drives detected.")
                answer = await self._prompter.ask(
                    'Press ENTER to retry or type "skip" to skip this port: '
                )
                if answer.strip().lower() == SKIP_ANSWER:
                    self._prompter.warn(f"Skipped port {port}")
                    logger.info("Port %d skipped by operator", port)
                    return None
            else:
                self._prompter.warn(
                    f"Multiple drives detected ({len(drives)}). "
                    "Please ensure only ONE drive is connected."
                )
                await self._prompter.ask("Remove extra drives and press ENTER to retry: ")
            await self._settle(self._scan_settle_delay)

        if drives:
            self._prompter.warn("Could not isolate a single drive. Skipping port.")
        else:
            self._prompter.warn(f"No USB drive found after {self._max_attempts} attempts. Skipping port {port}.")
        logger.warning("Port %d abandoned after %d scan attempts", port, self._max_attempts)
        return None

    async def _map_drive(self, port: int, drive: DriveObservation) -> Optional[str]:
        existing_port = self._mapper.get_existing_port(drive.location, drive.parent)
        if existing_port is not None:
            self._prompter.warn(f"\nWarning: This location was already mapped to port {existing_port}.")
            answer = await self._prompter.ask(f"Remap to port {port}? (Y/n): ")
            if declined(answer):
                self._prompter.warn(f"Skipped port {port}")
                return None

        try:
            key = self._mapper.add_mapping(drive.location, drive.parent, port)
        except (NormalizationError, InvalidPortError) as exc:
            logger.warning("Failed to map port %d (%s): %s", port, drive, exc)
            self._prompter.error(f"Failed to map port {port}: {exc}")
            return None

        # A remap moves the key away from the port it was recorded under
        for other_port, other_key in list(self._mapped.items()):
            if other_key == key and other_port != port:
                del self._mapped[other_port]
                self._skipped.append(other_port)

        self._prompter.success(f"✓ Port {port} mapped: {drive.display_name}")
        self._prompter.line(f"  Key: {key}")
        logger.info("Port %d mapped to %s", port, key)
        return key

    def _save(self, document: CalibrationDocument) -> CalibrationDocument:
        chips = self._mapper.get_known_chips()
        document.hub_info = {
            "primaryChip": chips[0] if chips else None,
            "secondaryChip": chips[1] if len(chips) > 1 else None,
        }
        document.mappings = self._mapper.get_all_mappings()

        self._prompter.line("")
        saved = self._store.save(document)
        self._prompter.success("✓ Calibration saved!")
        return saved

    def _show_summary(self) -> None:
        count = self._mapper.get_mapping_count()
        self._prompter.line("\nSummary:")
        self._prompter.line(f"Mapped: {count}/{PORT_COUNT} ports")

        missing = self._mapper.missing_ports()
        if missing:
            self._prompter.line("Unmapped ports: " + ", ".join(str(p) for p in missing))

        if count < PORT_COUNT:
            self._prompter.warn("Calibration incomplete. Run calibrate again to map remaining ports.")
        else:
            self._prompter.success('Calibration complete! Run "status" to view port mappings.')

    async def _settle(self, delay: float) -> None:
        if not await self._token.sleep(delay):
            self._token.raise_if_cancelled()


__all__ = ["CalibrationProcedure", "CalibrationResult", "CalibrationState"]
