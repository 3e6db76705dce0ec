from . import api
from .api import (
    ConversionOutcome,
    import_unity_package,
    load_settings,
    unity_to_usd,
    usd_to_unity_package,
)
from .backends import BackendReport, ConversionBackend, MockBackend, PxrBackend, select_backend
from .config.settings import CONVERSION_DEFAULTS, ConversionSettings
from .errors import (
    BridgeError,
    ConversionError,
    ErrorKind,
    FormatError,
    IoError,
    NotFoundError,
    UnsupportedFeature,
)
from .usd_context import Readiness, readiness

__version__ = "0.1.0"

__all__ = [
    "api",
    "usd_to_unity_package",
    "unity_to_usd",
    "import_unity_package",
    "load_settings",
    "ConversionOutcome",
    "ConversionSettings",
    "CONVERSION_DEFAULTS",
    "BackendReport",
    "ConversionBackend",
    "MockBackend",
    "PxrBackend",
    "select_backend",
    "Readiness",
    "readiness",
    "ErrorKind",
    "ConversionError",
    "NotFoundError",
    "IoError",
    "FormatError",
    "BridgeError",
    "UnsupportedFeature",
]
