"""Public façade: three conversions, each returning a :class:`ConversionOutcome`.

No exception escapes these functions.  Failures are classified into an
:class:`~usdunity.errors.ErrorKind`; call ``outcome.unwrap()`` to get the
typed exception back.
"""

from __future__ import annotations

import gzip
import logging
import tarfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

import yaml

from .backends import BackendReport, ConversionBackend, select_backend
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

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

_FORMAT_FAULTS = (yaml.YAMLError, tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error, ValueError)


@dataclass
class ConversionOutcome:
    """Result of one façade call: a message on success, a typed error otherwise."""

    ok: bool
    message: str
    error: Optional[ConversionError] = None
    warnings: List[UnsupportedFeature] = field(default_factory=list)
    outputs: List[Path] = field(default_factory=list)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    def as_tuple(self) -> Tuple[str, str]:
        return ("ok" if self.ok else "error", self.message)

    def unwrap(self) -> str:
        if self.error is not None:
            raise self.error
        return self.message

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, report: BackendReport) -> "ConversionOutcome":
        return cls(ok=True, message=report.message, warnings=list(report.warnings), outputs=list(report.outputs))

    @classmethod
    def failure(cls, error: ConversionError) -> "ConversionOutcome":
        return cls(ok=False, message=str(error), error=error)


def classify_error(exc: BaseException) -> ConversionError:
    """Map any exception raised during a conversion onto the error taxonomy."""
    if isinstance(exc, ConversionError):
        return exc
    if isinstance(exc, FileNotFoundError):
        error: ConversionError = NotFoundError(f"Not found: {exc.filename or exc}")
    elif isinstance(exc, OSError):
        error = IoError(str(exc))
    elif isinstance(exc, _FORMAT_FAULTS):
        error = FormatError(str(exc))
    else:
        error = BridgeError(f"{type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error


def load_settings(path: Optional[PathLike] = None, **overrides: Any) -> ConversionSettings:
    """Settings from an optional YAML/JSON file with keyword overrides on top."""
    base = ConversionSettings.from_file(Path(path)) if path else CONVERSION_DEFAULTS
    return base.with_overrides(**overrides)


def _path_argument(value: Any, role: str, error_type) -> Path:
    if isinstance(value, Path):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise error_type(f"{role} path must be a non-empty string (got {value!r})")
    return Path(value)


def _run(
    operation: str,
    source: Any,
    dest: Any,
    backend: Optional[ConversionBackend],
    settings: Optional[ConversionSettings],
    *,
    requires_usd: bool = True,
) -> ConversionOutcome:
    try:
        source_path = _path_argument(source, "Source", NotFoundError)
        dest_path = _path_argument(dest, "Destination", IoError)
        if not source_path.exists():
            raise NotFoundError(f"Source not found: {source_path}")
        chosen = backend if backend is not None else select_backend(requires_usd=requires_usd)
        method: Callable[..., BackendReport] = getattr(chosen, operation)
        report = method(source_path, dest_path, settings or CONVERSION_DEFAULTS)
        if not isinstance(report, BackendReport) or not isinstance(report.message, str):
            raise BridgeError(f"Backend {type(chosen).__name__}.{operation} returned {type(report).__name__}")
    except Exception as exc:  # classified below; the façade never raises
        error = classify_error(exc)
        if error.kind is ErrorKind.BRIDGE_ERROR and not isinstance(exc, ConversionError):
            LOG.error("%s failed unexpectedly", operation, exc_info=exc)
        else:
            LOG.error("%s failed (%s): %s", operation, error.kind.value, error)
        return ConversionOutcome.failure(error)
    for note in report.warnings:
        LOG.debug("%s: %s", operation, note)
    return ConversionOutcome.success(report)


def usd_to_unity_package(
    source: PathLike,
    dest: PathLike,
    *,
    backend: Optional[ConversionBackend] = None,
    settings: Optional[ConversionSettings] = None,
) -> ConversionOutcome:
    """Convert a USD stage into a ``.unitypackage``."""
    return _run("usd_to_unity_package", source, dest, backend, settings)


def unity_to_usd(
    source: PathLike,
    dest: PathLike,
    *,
    backend: Optional[ConversionBackend] = None,
    settings: Optional[ConversionSettings] = None,
) -> ConversionOutcome:
    """Convert a Unity scene, prefab, project directory or package into a USD stage."""
    return _run("unity_to_usd", source, dest, backend, settings)


def import_unity_package(
    source: PathLike,
    dest: PathLike,
    *,
    backend: Optional[ConversionBackend] = None,
    settings: Optional[ConversionSettings] = None,
) -> ConversionOutcome:
    """Extract a ``.unitypackage`` into ``dest``, keeping each asset's pathname."""
    return _run("import_unity_package", source, dest, backend, settings, requires_usd=False)


__all__ = [
    "ConversionOutcome",
    "classify_error",
    "import_unity_package",
    "load_settings",
    "unity_to_usd",
    "usd_to_unity_package",
]
