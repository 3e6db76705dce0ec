from __future__ import annotations

import enum
import importlib
import logging
import os
import sys
from typing import Dict, Optional

LOG = logging.getLogger(__name__)

_MODE: Optional[str] = None  # "pxr" or "mock"
_PXR_CACHE: Dict[str, object] = {}
_MODES = {"pxr", "mock"}


class Readiness(str, enum.Enum):
    """Whether real USD work can run in this interpreter."""

    READY = "ready"
    MOCK = "mock"
    UNAVAILABLE = "unavailable"


def _requested_mode() -> Optional[str]:
    raw = (os.environ.get("USDUNITY_USD_MODE") or "").strip().lower()
    if not raw:
        return None
    if raw not in _MODES:
        LOG.debug("Unknown USDUNITY_USD_MODE '%s'; ignoring", raw)
        return None
    return raw


def get_mode() -> Optional[str]:
    """Return the current USD mode ('pxr' or 'mock'), or None before initialisation."""
    return _MODE


def initialize_usd(*, mode: Optional[str] = None) -> str:
    """Prepare USD bindings.

    - If `mode` is None, keep whatever mode we're already in (or the
      USDUNITY_USD_MODE environment default, falling back to 'pxr').
    - Re-initialising with the current mode is a no-op.
    """
    global _MODE, _PXR_CACHE

    if mode is None:
        desired = _MODE or _requested_mode() or "pxr"
    else:
        desired = str(mode).strip().lower()
        if desired not in _MODES:
            raise ValueError(f"Unknown USD mode '{mode}'; expected one of {sorted(_MODES)}")

    if _MODE == desired:
        return _MODE

    _teardown()
    if desired == "pxr":
        importlib.import_module("pxr")
    _MODE = desired
    _PXR_CACHE = {}
    return _MODE


def readiness() -> Readiness:
    """Probe the runtime without raising.

    A forced or already-selected mock mode wins; otherwise the pxr bindings
    must import for real work to be possible.
    """
    requested = _MODE or _requested_mode()
    if requested == "mock":
        return Readiness.MOCK
    try:
        initialize_usd(mode="pxr")
    except ImportError as exc:
        LOG.debug("pxr bindings unavailable: %s", exc)
        return Readiness.UNAVAILABLE
    return Readiness.READY


def _teardown() -> None:
    global _MODE, _PXR_CACHE
    _PXR_CACHE = {}
    _MODE = None


def _clear_pxr_modules() -> None:
    for name in list(sys.modules):
        if name == "pxr" or name.startswith("pxr."):
            sys.modules.pop(name, None)


def get_pxr_module(name: str):
    if name not in _PXR_CACHE:
        if _MODE is None:
            initialize_usd()
        if _MODE == "mock":
            raise RuntimeError(f"pxr.{name} requested while the USD context is in mock mode")
        _PXR_CACHE[name] = importlib.import_module(f"pxr.{name}")
    return _PXR_CACHE[name]


def shutdown_usd_context(*, unload: bool = False) -> None:
    """Forget the selected mode; with ``unload`` also drop pxr from sys.modules."""
    _teardown()
    if unload:
        _clear_pxr_modules()


__all__ = [
    "Readiness",
    "get_mode",
    "get_pxr_module",
    "initialize_usd",
    "readiness",
    "shutdown_usd_context",
]
