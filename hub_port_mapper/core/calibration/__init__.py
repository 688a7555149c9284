"""Interactive calibration wizard."""

from .procedure import CalibrationProcedure, CalibrationResult, CalibrationState
from .prompts import ConsolePrompter, Prompter, declined

__all__ = [
    "CalibrationProcedure",
    "CalibrationResult",
    "CalibrationState",
    "ConsolePrompter",
    "Prompter",
    "declined",
]
