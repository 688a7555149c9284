"""Command handlers: status, calibrate, monitor, reset, hubs and help.

Each handler returns the process exit status. Errors the operator can act on
are reported here; anything else propagates to the CLI entry point.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from hub_port_mapper.core.calibration import CalibrationProcedure, ConsolePrompter, declined
from hub_port_mapper.core.cancellation import CancellationToken
from hub_port_mapper.core.config_manager import MapperSettings
from hub_port_mapper.core.devices import DeviceSource, PowerShellDeviceScanner
from hub_port_mapper.core.devices.types import optional_text
from hub_port_mapper.core.errors import (
    CalibrationFileError,
    CorruptionError,
    PersistenceError,
    ScanError,
)
from hub_port_mapper.core.logging_utils import get_module_logger
from hub_port_mapper.core.mapping import PORT_COUNT, CalibrationDocument, CalibrationStore, PortMapper
from hub_port_mapper.core.monitor import DriveMonitor, MonitorDelta
from hub_port_mapper.core.status import StatusReport, resolve_status, summarize_hubs

logger = get_module_logger("Commands")

BOX_WIDTH = 59
TABLE_WIDTH = 50


@dataclass
class CommandContext:
    """Everything a command needs for one invocation."""
    settings: MapperSettings
    store: CalibrationStore
    source: DeviceSource
    console: ConsolePrompter
    token: CancellationToken

    @classmethod
    def create(cls, settings: MapperSettings, token: Optional[CancellationToken] = None) -> "CommandContext":
        token = token or CancellationToken()
        return cls(
            settings=settings,
            store=CalibrationStore(settings.calibration_file),
            source=PowerShellDeviceScanner(
                timeout=settings.scan_timeout,
                hub_vendor_id=settings.hub_vendor_id,
                token=token,
            ),
            console=ConsolePrompter(token),
            token=token,
        )


# ----------------------------------------------------------------------
# Formatting helpers

def format_date(document: Optional[CalibrationDocument]) -> str:
    updated = document.updated if document else None
    if updated is None:
        return "Unknown"
    return updated.astimezone().strftime("%m/%d/%Y")


def format_time(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now()).strftime("%H:%M:%S")


def format_date_time(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now()).strftime("%m/%d/%Y %H:%M:%S")


def _boxed(plain: str, painted: Optional[str] = None) -> str:
    """Pad ``plain`` to the box width; ``painted`` is the same text with colors."""
    text = plain[:BOX_WIDTH]
    padding = " " * (BOX_WIDTH - len(text))
    return "║" + (painted if painted is not None and len(plain) <= BOX_WIDTH else text) + padding + "║"


def _rule(left: str = "╠", right: str = "╣") -> str:
    return left + "═" * BOX_WIDTH + right


# ----------------------------------------------------------------------
# status

async def _recover_unusable_file(ctx: CommandContext, exc: CalibrationFileError) -> None:
    console = ctx.console
    if isinstance(exc, CorruptionError):
        console.error("\nCalibration file is corrupted.")
    else:
        console.error(f"\nCalibration file is invalid: {exc}")
    answer = await console.ask("Delete and recalibrate? (Y/n): ")
    if not declined(answer):
        ctx.store.clear()
        console.line('Calibration cleared. Run "calibrate" to set up again.')


def render_status(ctx: CommandContext, report: StatusReport, calibration: Optional[CalibrationDocument]) -> None:
    console = ctx.console
    out = console.line

    out("")
    out(_rule("╔", "╗"))
    out(_boxed("           USB Hub Port Mapper - Status"))
    out(_rule())

    if calibration is not None and report.calibrated:
        state = "✓ Complete"
        suffix = f" ({format_date(calibration)})"
        kind = "green"
    elif calibration is not None:
        state = "Partial"
        suffix = f" ({report.mapped_count}/{PORT_COUNT} ports)"
        kind = "yellow"
    else:
        state = "✗ Not Calibrated"
        suffix = ""
        kind = "red"
    out(_boxed(
        f" Calibration: {state}{suffix}",
        f" Calibration: {console.paint(kind, state)}{suffix}",
    ))
    out(_boxed(f" Mapped Ports: {report.mapped_count}/{PORT_COUNT}"))
    if calibration is not None and report.missing_ports:
        out(_boxed(" Unmapped: " + ", ".join(str(p) for p in report.missing_ports)))

    if report.mismatch:
        out(_rule())
        banner = " ! Calibration Mismatch - Unknown hub detected"
        out(_boxed(banner, console.paint("yellow", banner)))

    out(_rule())
    out(_boxed("  PORT │ DEVICE                    │ SERIAL"))
    out(_rule())

    for slot in report.slots:
        port_str = str(slot.port).rjust(3).ljust(5)
        device_str = (slot.drive.display_name if slot.drive else "(empty)")[:25].ljust(25)
        serial_str = (slot.drive.serial if slot.drive else "")[:20].ljust(20)
        plain = f" {port_str} │ {device_str} │ {serial_str}"
        painted = f" {console.paint('green', port_str)} │ {device_str} │ {serial_str}" if slot.drive else None
        out(_boxed(plain, painted))

    if report.unknown:
        out(_rule())
        out(_boxed(" Unknown Devices:", " " + console.paint("yellow", "Unknown Devices:")))
        for resolution in report.unknown:
            name = resolution.drive.display_name[:30].ljust(30)
            serial = resolution.drive.serial[:16].ljust(16)
            out(_boxed(f"   ? │ {name} │ {serial}"))

    out(_rule("╚", "╝"))


async def cmd_status(ctx: CommandContext) -> int:
    try:
        calibration = ctx.store.load()
    except CalibrationFileError as exc:
        logger.warning("Calibration file unusable: %s", exc)
        await _recover_unusable_file(ctx, exc)
        return 0

    mapper = PortMapper.from_document(calibration)

    try:
        drives = await ctx.source.get_drives()
    except ScanError as exc:
        logger.error("Drive scan failed: %s", exc)
        ctx.console.error(f"\nError scanning drives: {exc}")
        return 1

    report = resolve_status(drives, mapper)
    render_status(ctx, report, calibration)

    if calibration is None:
        ctx.console.warn('\nRun "hub-port-mapper calibrate" to set up port mapping.')
    elif report.mismatch:
        ctx.console.warn('\nThe hub appears to be on a different USB controller. Run "calibrate" again.')
    return 0


# ----------------------------------------------------------------------
# calibrate

async def cmd_calibrate(ctx: CommandContext) -> int:
    console = ctx.console
    console.line("")
    console.info("═" * TABLE_WIDTH)
    console.info("  USB Hub Port Mapper - Calibration Wizard")
    console.info("═" * TABLE_WIDTH)

    procedure = CalibrationProcedure(
        ctx.store,
        ctx.source,
        console,
        token=ctx.token,
        max_attempts=ctx.settings.max_scan_attempts,
        scan_settle_delay=ctx.settings.scan_settle_delay,
        removal_settle_delay=ctx.settings.removal_settle_delay,
    )

    try:
        result = await procedure.run()
    except ScanError as exc:
        logger.error("Calibration aborted by scan failure: %s", exc)
        console.error(f"Scan error: {exc}")
        return 1
    except PersistenceError as exc:
        logger.error("Calibration could not be saved: %s", exc)
        console.error(f"Failed to save: {exc}")
        return 1

    logger.info(
        "Calibration finished: state=%s mapped=%d skipped=%s",
        result.state.name, result.mapped_count, result.skipped,
    )
    return 0


# ----------------------------------------------------------------------
# monitor

def print_delta(ctx: CommandContext, delta: MonitorDelta) -> None:
    console = ctx.console

    for event in delta.appeared:
        time_str = format_time(event.timestamp)
        details = f"{event.drive.display_name} │ {event.drive.serial}"
        if event.port is not None:
            console.success(f"[{time_str}] + PORT {event.port} │ {details}")
        else:
            console.warn(f"[{time_str}] ? UNKNOWN │ {details}")

    for event in delta.disappeared:
        time_str = format_time(event.timestamp)
        label = f"- PORT {event.port}" if event.port is not None else "- UNKNOWN"
        console.line(f"[{time_str}] {console.paint('red', label)} │ Device removed")


async def cmd_monitor(ctx: CommandContext) -> int:
    console = ctx.console
    try:
        calibration = ctx.store.load()
    except CalibrationFileError as exc:
        logger.error("Calibration file unusable: %s", exc)
        if isinstance(exc, CorruptionError):
            console.error('Calibration file is corrupted. Run "reset" then "calibrate".')
        else:
            console.error(f'Calibration file is invalid: {exc}. Run "reset" then "calibrate".')
        return 1

    mapper = PortMapper.from_document(calibration)
    if not mapper.is_calibrated():
        console.warn("Warning: Not fully calibrated. Some ports may show as unknown.")

    console.line("")
    console.info(f"[{format_date_time()}] Watching for USB changes (Ctrl+C to exit)...")
    console.line("")

    monitor = DriveMonitor(
        ctx.source,
        mapper,
        token=ctx.token,
        poll_interval=ctx.settings.poll_interval,
    )

    try:
        await monitor.prime()
    except ScanError as exc:
        logger.error("Initial monitor scan failed: %s", exc)
        console.error(f"Initial scan failed: {exc}")
        return 1

    await monitor.run(on_delta=lambda delta: print_delta(ctx, delta))
    console.line("\nMonitor stopped.")
    return 0


# ----------------------------------------------------------------------
# reset

async def cmd_reset(ctx: CommandContext) -> int:
    console = ctx.console
    if not ctx.store.exists():
        console.line("No calibration file found.")
        return 0

    answer = await console.ask("Delete calibration data? (Y/n): ")
    if declined(answer):
        console.line("Cancelled.")
        return 0

    try:
        ctx.store.clear()
    except PersistenceError as exc:
        logger.error("Reset failed: %s", exc)
        console.error(f"Failed to clear: {exc}")
        return 1

    console.success("Calibration data cleared.")
    return 0


# ----------------------------------------------------------------------
# hubs

def _calibrated_chips(ctx: CommandContext) -> list[str]:
    try:
        return PortMapper.from_document(ctx.store.load()).get_known_chips()
    except CalibrationFileError as exc:
        logger.debug("Ignoring unusable calibration while listing hubs: %s", exc)
        return []


async def cmd_hubs(ctx: CommandContext) -> int:
    console = ctx.console
    console.line("")
    console.info("VL822 Hub Topology")
    console.info("─" * 40)

    try:
        hubs = await ctx.source.get_hubs()
    except ScanError as exc:
        logger.error("Hub scan failed: %s", exc)
        console.error(f"Error scanning hubs: {exc}")
        return 1

    if not hubs:
        console.warn("No VL822 hubs detected.")
        console.line("Make sure the hub is connected and powered on.")
        return 0

    console.line(f"Found {len(hubs)} hub instance(s):\n")
    for hub in hubs:
        console.line(f"{console.paint('cyan', '•')} {hub.display_name} ({hub.speed_label})")
        console.line(f"  Instance: {optional_text(hub.instance_id)}")
        console.line(f"  Location: {optional_text(hub.location)}")
        console.line(f"  Parent:   {optional_text(hub.parent)}")
        console.line("")

    chips = summarize_hubs(hubs)
    if chips:
        calibrated = set(_calibrated_chips(ctx))
        console.info("Chip Summary:")
        for prefix, nodes in chips.items():
            marker = " (calibrated)" if prefix in calibrated else ""
            console.line(f"  {prefix}: {len(nodes)} instance(s){marker}")
    return 0


# ----------------------------------------------------------------------
# help

HELP_TEXT = """
USB Hub Port Mapper
Maps USB flash drives to physical port positions (1-7) on VL822 cascaded hubs.

Usage:
  hub-port-mapper [command] [options]

Commands:
  status     Show calibration status and connected drives (default)
  calibrate  Interactive 7-step calibration wizard
  monitor    Continuous watch mode (2s polling)
  reset      Clear calibration data
  hubs       Show VL822 hub topology
  help       Show this help message

Options:
  --config PATH            Config file (default: ~/.hub_port_mapper/config.txt)
  --calibration-file PATH  Calibration document (default: ./calibration.json)
  --log-level LEVEL        debug, info, warning, error or critical
  --console / --no-console Also write log lines to stderr

Examples:
  hub-port-mapper              # Show status
  hub-port-mapper calibrate    # Start calibration
  hub-port-mapper monitor      # Watch for USB changes

How It Works:
  The same physical port appears differently in Windows depending on whether
  a USB 2.0 or 3.0 device is connected. This tool extracts a stable key from
  the device's parent hub instance ID to reliably identify physical ports.
"""


def print_help(console: Optional[ConsolePrompter] = None) -> None:
    (console or ConsolePrompter()).line(HELP_TEXT)


CommandHandler = Callable[[CommandContext], Awaitable[int]]

COMMAND_HANDLERS: Dict[str, CommandHandler] = {
    "status": cmd_status,
    "calibrate": cmd_calibrate,
    "monitor": cmd_monitor,
    "reset": cmd_reset,
    "hubs": cmd_hubs,
}


__all__ = [
    "COMMAND_HANDLERS",
    "CommandContext",
    "HELP_TEXT",
    "cmd_calibrate",
    "cmd_hubs",
    "cmd_monitor",
    "cmd_reset",
    "cmd_status",
    "print_delta",
    "print_help",
    "render_status",
]
