"""Plain-text ``key = value`` configuration for the hub port mapper."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional

import aiofiles

from .logging_utils import get_module_logger
from .paths import default_calibration_path


logger = get_module_logger("ConfigManager")


class ConfigManager:

    # ------------------------------------------------------------------
    # Internal helpers

    def _parse_config_lines(self, lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith('#'):
                continue
            if '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()

            if '#' in value:
                value = value.split('#')[0].strip()

            if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                value = value[1:-1]

            config[key] = value

        return config

    def read_config(self, config_path: Path) -> Dict[str, str]:
        """Read a config file synchronously; a missing file yields ``{}``."""
        if not config_path.exists():
            logger.debug("No config file at %s, using defaults", config_path)
            return {}

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return self._parse_config_lines(f)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read config %s: %s", config_path, e)
            return {}

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        """Async version for use inside the running command."""
        if not await asyncio.to_thread(config_path.exists):
            logger.debug("No config file at %s, using defaults", config_path)
            return {}

        try:
            lines: list[str] = []
            async with aiofiles.open(config_path, 'r', encoding='utf-8') as f:
                async for line in f:
                    lines.append(line)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read config %s: %s", config_path, e)
            return {}

        return self._parse_config_lines(lines)

    def get_bool(self, config: Dict[str, str], key: str, default: bool = False) -> bool:
        if key not in config:
            return default

        value = config[key].lower()
        return value in ('true', '1', 'yes', 'on')

    def get_int(self, config: Dict[str, str], key: str, default: int = 0) -> int:
        if key not in config:
            return default

        try:
            return int(config[key])
        except ValueError:
            logger.warning("Invalid int value for %s: %s, using default %d", key, config[key], default)
            return default

    def get_float(self, config: Dict[str, str], key: str, default: float = 0.0) -> float:
        if key not in config:
            return default

        try:
            return float(config[key])
        except ValueError:
            logger.warning("Invalid float value for %s: %s, using default %f", key, config[key], default)
            return default

    def get_str(self, config: Dict[str, str], key: str, default: str = "") -> str:
        return config.get(key, default)


@dataclass
class MapperSettings:
    """Runtime settings resolved from the config file."""

    calibration_file: Path = field(default_factory=default_calibration_path)
    scan_timeout: float = 10.0
    max_scan_attempts: int = 3
    scan_settle_delay: float = 1.0
    removal_settle_delay: float = 0.5
    poll_interval: float = 2.0
    hub_vendor_id: str = "2109"
    log_level: str = "info"
    console_output: bool = False

    @classmethod
    def from_config(
        cls,
        config: Dict[str, str],
        manager: Optional[ConfigManager] = None,
    ) -> "MapperSettings":
        cm = manager or get_config_manager()
        defaults = cls()

        calibration_file = cm.get_str(config, 'calibration_file', default="")
        max_attempts = cm.get_int(config, 'max_scan_attempts', default=defaults.max_scan_attempts)
        if max_attempts < 1:
            logger.warning("max_scan_attempts must be >= 1, got %d; using 1", max_attempts)
            max_attempts = 1

        return cls(
            calibration_file=Path(calibration_file).expanduser() if calibration_file else defaults.calibration_file,
            scan_timeout=cm.get_float(config, 'scan_timeout', default=defaults.scan_timeout),
            max_scan_attempts=max_attempts,
            scan_settle_delay=cm.get_float(config, 'scan_settle_delay', default=defaults.scan_settle_delay),
            removal_settle_delay=cm.get_float(config, 'removal_settle_delay', default=defaults.removal_settle_delay),
            poll_interval=cm.get_float(config, 'poll_interval', default=defaults.poll_interval),
            hub_vendor_id=cm.get_str(config, 'hub_vendor_id', default=defaults.hub_vendor_id).upper(),
            log_level=cm.get_str(config, 'log_level', default=defaults.log_level).lower(),
            console_output=cm.get_bool(config, 'console_output', default=defaults.console_output),
        )


_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    return _config_manager


def load_settings(config_path: Path) -> MapperSettings:
    """Read ``config_path`` (if present) into a :class:`MapperSettings`."""
    manager = get_config_manager()
    return MapperSettings.from_config(manager.read_config(config_path), manager)


async def load_settings_async(config_path: Path) -> MapperSettings:
    manager = get_config_manager()
    config = await manager.read_config_async(config_path)
    return MapperSettings.from_config(config, manager)


__all__ = [
    "ConfigManager",
    "MapperSettings",
    "get_config_manager",
    "load_settings",
    "load_settings_async",
]
