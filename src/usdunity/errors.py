"""Error kinds raised by the converters and reported by the façade."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NotFound"
    IO_ERROR = "IoError"
    FORMAT_ERROR = "FormatError"
    UNSUPPORTED_FEATURE = "UnsupportedFeature"
    BRIDGE_ERROR = "BridgeError"


class ConversionError(Exception):
    """Base class for failures that abort a conversion."""

    kind: ErrorKind = ErrorKind.BRIDGE_ERROR


class NotFoundError(ConversionError):
    """The source path does not exist."""

    kind = ErrorKind.NOT_FOUND


class IoError(ConversionError):
    """Write/extract failure, permission problem or archive path traversal."""

    kind = ErrorKind.IO_ERROR


class FormatError(ConversionError):
    """Archive, YAML or object graph could not be interpreted."""

    kind = ErrorKind.FORMAT_ERROR


class BridgeError(ConversionError):
    """The conversion backend itself failed or returned something undecodable."""

    kind = ErrorKind.BRIDGE_ERROR


@dataclass(frozen=True)
class UnsupportedFeature:
    """A node or component skipped because it has no counterpart on the other side."""

    source_path: str
    source_type: str
    reason: str = "no mapping"

    kind = ErrorKind.UNSUPPORTED_FEATURE

    def __str__(self) -> str:
        return f"{self.source_type} at {self.source_path}: {self.reason}"


__all__ = [
    "ErrorKind",
    "ConversionError",
    "NotFoundError",
    "IoError",
    "FormatError",
    "BridgeError",
    "UnsupportedFeature",
]
