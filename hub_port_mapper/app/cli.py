import argparse
import asyncio
import os
import signal
import sys
import traceback
from pathlib import Path
from typing import Callable, Optional

from hub_port_mapper.app.commands import COMMAND_HANDLERS, CommandContext, print_help
from hub_port_mapper.core.calibration import ConsolePrompter
from hub_port_mapper.core.cancellation import CancellationToken
from hub_port_mapper.core.config_manager import MapperSettings, load_settings_async
from hub_port_mapper.core.errors import HubPortMapperError, OperationCancelled
from hub_port_mapper.core.logging_config import LOG_LEVELS, configure_logging
from hub_port_mapper.core.logging_utils import get_module_logger
from hub_port_mapper.core.paths import CONFIG_PATH, LOG_FILE, ensure_directories


logger = get_module_logger("CLI")

COMMANDS = ("status", "calibrate", "monitor", "reset", "hubs", "help")
DEFAULT_COMMAND = "status"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments; unset options fall back to the config file."""
    parser = argparse.ArgumentParser(
        prog="hub-port-mapper",
        description="USB Hub Port Mapper - identify physical ports on VL822 cascaded hubs",
        add_help=False,
    )

    parser.add_argument(
        "command",
        nargs="?",
        default=DEFAULT_COMMAND,
        help="status (default), calibrate, monitor, reset, hubs or help"
    )

    parser.add_argument(
        "-h", "--help",
        dest="show_help",
        action="store_true",
        help="Show help and exit"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Config file (default: ~/.hub_port_mapper/config.txt)"
    )

    parser.add_argument(
        "--calibration-file",
        type=Path,
        default=None,
        help="Calibration document (default: calibration.json in the working directory)"
    )

    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        default=None,
        help="Logging level (default: info)"
    )

    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=None,
        help="Also log to stderr"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only"
    )

    return parser.parse_args(argv)


def apply_overrides(settings: MapperSettings, args: argparse.Namespace) -> MapperSettings:
    if args.calibration_file is not None:
        settings.calibration_file = args.calibration_file.expanduser()
    if args.log_level is not None:
        settings.log_level = args.log_level
    if args.console_output is not None:
        settings.console_output = args.console_output
    return settings


def install_signal_handlers(token: CancellationToken) -> Callable[[], None]:
    """Cancel ``token`` on SIGINT/SIGTERM; returns a function that undoes it."""
    loop = asyncio.get_running_loop()
    restorers: list[Callable[[], None]] = []

    def signal_handler() -> None:
        logger.info("Interrupt received")
        token.cancel("signal")

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
            restorers.append(lambda sig=sig: loop.remove_signal_handler(sig))
            continue
        except (NotImplementedError, RuntimeError):
            pass  # Windows doesn't support add_signal_handler

        try:
            previous = signal.signal(sig, lambda *_: loop.call_soon_threadsafe(signal_handler))
        except (ValueError, OSError):
            # Not the main thread; Ctrl+C falls back to KeyboardInterrupt
            continue
        restorers.append(lambda sig=sig, previous=previous: signal.signal(sig, previous))

    def restore() -> None:
        for undo in restorers:
            undo()

    return restore


async def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, configure logging and dispatch one command.

    Returns the process exit status.
    """
    args = parse_args(argv)
    console = ConsolePrompter()

    command = "help" if args.show_help else args.command.lower()
    if command not in COMMANDS:
        console.error(f"Unknown command: {args.command}")
        print_help(console)
        return 1
    if command == "help":
        print_help(console)
        return 0

    if sys.platform != "win32":
        console.error("This tool requires Windows.")
        return 1

    settings = apply_overrides(await load_settings_async(args.config), args)

    try:
        ensure_directories()
    except OSError as exc:
        console.warn(f"Warning: cannot create state directory: {exc}")

    configure_logging(
        settings.log_level,
        force=True,
        console=settings.console_output,
        log_file=LOG_FILE,
    )

    logger.info("=" * 60)
    logger.info("Hub Port Mapper - %s", command)
    logger.info("Calibration file: %s", settings.calibration_file)
    logger.info("=" * 60)

    token = CancellationToken()
    ctx = CommandContext.create(settings, token)
    restore_signals = install_signal_handlers(token)

    try:
        return await COMMAND_HANDLERS[command](ctx)
    except OperationCancelled as exc:
        logger.info("Command cancelled: %s", exc)
        console.line("\nExiting...")
        return 0
    except HubPortMapperError as exc:
        logger.error("Command %s failed: %s", command, exc)
        console.error(f"\nError: {exc}")
        if os.environ.get("DEBUG"):
            traceback.print_exc()
        return 1
    finally:
        restore_signals()


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nExiting...")
        return 0


def entry_point() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    raise SystemExit(run())
