"""Centralized path constants for the hub port mapper."""

from __future__ import annotations

import os
from pathlib import Path

# The calibration document lives next to wherever the tool is run from.
CALIBRATION_FILENAME = "calibration.json"

# User-specific state (config and logs), overridable for tests and kiosks
_USER_STATE_ENV = os.environ.get("HUB_PORT_MAPPER_STATE_DIR")
USER_STATE_DIR = (
    Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".hub_port_mapper")
)
CONFIG_PATH = USER_STATE_DIR / "config.txt"
LOGS_DIR = USER_STATE_DIR / "logs"
LOG_FILE = LOGS_DIR / "hub_port_mapper.log"


def default_calibration_path() -> Path:
    """Return ``calibration.json`` in the current working directory."""
    return Path.cwd() / CALIBRATION_FILENAME


def ensure_directories() -> None:
    """Create the state directories if they don't exist."""
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    "CALIBRATION_FILENAME",
    "USER_STATE_DIR",
    "CONFIG_PATH",
    "LOGS_DIR",
    "LOG_FILE",
    "default_calibration_path",
    "ensure_directories",
]
