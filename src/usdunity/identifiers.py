"""Deterministic GUIDs and per-document file identifiers."""

from __future__ import annotations

import hashlib
import re

_GUID_RE = re.compile(r"^[0-9a-f]{32}$")


def derive_guid(namespace: str, key: str) -> str:
    """Stable 32-hex GUID for ``key`` within ``namespace`` (no randomness, so re-imports match)."""
    digest = hashlib.md5(f"{namespace}\x00{key}".encode("utf-8")).hexdigest()
    return digest


def is_guid(value: object) -> bool:
    return isinstance(value, str) and bool(_GUID_RE.match(value))


class FileIdAllocator:
    """Hands out file identifiers unique within one serialized document."""

    def __init__(self, start: int = 1):
        if start <= 0:
            raise ValueError("file identifiers start at 1; 0 means 'no reference'")
        self._next = int(start)
        self._issued: set[int] = set()

    def allocate(self) -> int:
        while self._next in self._issued:
            self._next += 1
        value = self._next
        self._issued.add(value)
        self._next += 1
        return value

    def reserve(self, value: int) -> int:
        value = int(value)
        if value == 0:
            raise ValueError("fileID 0 is reserved for null references")
        if value in self._issued:
            raise ValueError(f"fileID {value} already issued")
        self._issued.add(value)
        return value


__all__ = ["FileIdAllocator", "derive_guid", "is_guid"]
