"""
Exception taxonomy for the hub port mapper.

Normalization failures are only raised by the mutating mapper call; every
read-side lookup turns them into ``None``. Store and scan failures propagate
to the invoking command, which either offers recovery (unreadable or invalid
calibration file) or exits non-zero.
"""


class HubPortMapperError(Exception):
    """Base class for all errors raised by this package."""


class NormalizationError(HubPortMapperError):
    """Raw topology strings are insufficient to derive an identity key."""


class InvalidPortError(HubPortMapperError, ValueError):
    """Physical port number is not an integer in 1..7."""


class CalibrationFileError(HubPortMapperError):
    """The persisted calibration document cannot be used."""


class SchemaError(CalibrationFileError):
    """The calibration document parsed but failed validation."""


class CorruptionError(CalibrationFileError):
    """The calibration file could not be parsed at all."""


class PersistenceError(HubPortMapperError):
    """The calibration file could not be written or deleted (permissions)."""


class ScanError(HubPortMapperError):
    """The device observation source failed."""


class ScanTimeoutError(ScanError):
    """A device scan exceeded its timeout, even after the silent retry."""


class ScanUnavailableError(ScanError):
    """The OS tooling needed for scanning (PowerShell) is missing."""


class OperationCancelled(HubPortMapperError):
    """The operator interrupted the running command."""


__all__ = [
    "HubPortMapperError",
    "NormalizationError",
    "InvalidPortError",
    "CalibrationFileError",
    "SchemaError",
    "CorruptionError",
    "PersistenceError",
    "ScanError",
    "ScanTimeoutError",
    "ScanUnavailableError",
    "OperationCancelled",
]
