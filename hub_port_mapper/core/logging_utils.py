"""Component-tagged loggers under the ``hub_port_mapper`` namespace."""

from __future__ import annotations

import logging
from typing import Optional

MODULE_LOGGER_NAMESPACE = "hub_port_mapper"
DEFAULT_COMPONENT = "Core"


class StructuredLogger:
    """
    Prefixes every record with ``[Component]`` so one rotating log file can be
    read per subsystem (``[DeviceScanner]``, ``[Calibration]``, ``[Monitor]``).

    Arguments are interpolated here rather than by ``logging``; a message whose
    arguments don't fit its format string is still written, with the raw
    arguments appended, instead of raising inside a scan or prompt handler.
    """

    __slots__ = ("_logger", "_component")

    def __init__(self, logger: logging.Logger, component: str) -> None:
        self._logger = logger
        self._component = component

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def component(self) -> str:
        return self._component

    def _write(self, level: int, message: object, args: tuple, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        text = str(message)
        if args:
            try:
                text = text % args
            except (TypeError, ValueError):
                text = f"{text} | args={' '.join(str(arg) for arg in args)}"
        self._logger.log(level, f"[{self._component}] {text}", **kwargs)

    def debug(self, message: object, *args, **kwargs) -> None:
        self._write(logging.DEBUG, message, args, **kwargs)

    def info(self, message: object, *args, **kwargs) -> None:
        self._write(logging.INFO, message, args, **kwargs)

    def warning(self, message: object, *args, **kwargs) -> None:
        self._write(logging.WARNING, message, args, **kwargs)

    def error(self, message: object, *args, **kwargs) -> None:
        self._write(logging.ERROR, message, args, **kwargs)


def get_module_logger(component: Optional[str] = None) -> StructuredLogger:
    """Return the logger for ``component`` (e.g. "Calibration") under ``hub_port_mapper``."""
    component = component or DEFAULT_COMPONENT
    return StructuredLogger(logging.getLogger(f"{MODULE_LOGGER_NAMESPACE}.{component}"), component)


__all__ = [
    "StructuredLogger",
    "get_module_logger",
]
