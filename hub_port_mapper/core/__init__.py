from .cancellation import CancellationToken
from .config_manager import MapperSettings, get_config_manager, load_settings
from .errors import (
    CalibrationFileError,
    CorruptionError,
    HubPortMapperError,
    InvalidPortError,
    NormalizationError,
    OperationCancelled,
    PersistenceError,
    ScanError,
    ScanTimeoutError,
    ScanUnavailableError,
    SchemaError,
)
from .mapping import CalibrationDocument, CalibrationStore, PortMapper

__all__ = [
    'CalibrationDocument',
    'CalibrationFileError',
    'CalibrationStore',
    'CancellationToken',
    'CorruptionError',
    'HubPortMapperError',
    'InvalidPortError',
    'MapperSettings',
    'NormalizationError',
    'OperationCancelled',
    'PersistenceError',
    'PortMapper',
    'ScanError',
    'ScanTimeoutError',
    'ScanUnavailableError',
    'SchemaError',
    'get_config_manager',
    'load_settings',
]
