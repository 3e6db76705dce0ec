"""Conversion strategies behind the façade.

``PxrBackend`` does the real work through the OpenUSD bindings; ``MockBackend``
returns canned messages without touching the filesystem, for hosts where pxr
is not installed but the calling surface still has to be exercised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .archive import extract_package
from .config.settings import CONVERSION_DEFAULTS, ConversionSettings
from .errors import BridgeError, UnsupportedFeature
from .usd_context import Readiness, initialize_usd, readiness

LOG = logging.getLogger(__name__)


@dataclass
class BackendReport:
    message: str
    warnings: List[UnsupportedFeature] = field(default_factory=list)
    outputs: List[Path] = field(default_factory=list)


class ConversionBackend:
    """Interface every backend implements; each method raises on failure."""

    name = "abstract"

    def usd_to_unity_package(
        self, source: Path, dest: Path, settings: ConversionSettings = CONVERSION_DEFAULTS
    ) -> BackendReport:
        raise NotImplementedError

    def unity_to_usd(
        self, source: Path, dest: Path, settings: ConversionSettings = CONVERSION_DEFAULTS
    ) -> BackendReport:
        raise NotImplementedError

    def import_unity_package(
        self, source: Path, dest: Path, settings: ConversionSettings = CONVERSION_DEFAULTS
    ) -> BackendReport:
        raise NotImplementedError


class PxrBackend(ConversionBackend):
    name = "pxr"

    def usd_to_unity_package(self, source, dest, settings=CONVERSION_DEFAULTS):
        initialize_usd(mode="pxr")
        from .usd_to_unity import convert_usd_to_unity_package

        build, written = convert_usd_to_unity_package(source, dest, settings=settings)
        counts = build.counts
        message = (
            f"Converted {source} to Unity package {written} "
            f"({counts.get('game_objects', 0)} GameObjects, {counts.get('meshes', 0)} meshes, "
            f"{counts.get('materials', 0)} materials)"
        )
        return BackendReport(message=message, warnings=list(build.warnings), outputs=[written])

    def unity_to_usd(self, source, dest, settings=CONVERSION_DEFAULTS):
        initialize_usd(mode="pxr")
        from .unity_to_usd import convert_unity_to_usd

        build = convert_unity_to_usd(source, dest, settings=settings)
        message = (
            f"Converted {len(build.scenes)} Unity scene(s) from {source} to USD stage {build.dest} "
            f"({build.counts.get('prims', 0)} prims)"
        )
        return BackendReport(message=message, warnings=list(build.warnings), outputs=[build.dest])

    def import_unity_package(self, source, dest, settings=CONVERSION_DEFAULTS):
        written = extract_package(source, dest)
        return BackendReport(
            message=f"Imported {len(written)} file(s) from {source} into {dest}",
            outputs=list(written),
        )


class MockBackend(ConversionBackend):
    name = "mock"

    def usd_to_unity_package(self, source, dest, settings=CONVERSION_DEFAULTS):
        return BackendReport(message=f"Mock converted USD {source} to Unity package {dest}")

    def unity_to_usd(self, source, dest, settings=CONVERSION_DEFAULTS):
        return BackendReport(message=f"Mock converted Unity {source} to USD {dest}")

    def import_unity_package(self, source, dest, settings=CONVERSION_DEFAULTS):
        return BackendReport(message=f"Mock imported Unity package {source} into {dest}")


def select_backend(state: Optional[Readiness] = None, *, requires_usd: bool = True) -> ConversionBackend:
    """Pick the backend for the current runtime; raises BridgeError when none can run.

    Package import never touches pxr, so with ``requires_usd=False`` a missing
    binding still selects the real backend.
    """
    state = state or readiness()
    if state is Readiness.READY:
        return PxrBackend()
    if state is Readiness.MOCK:
        LOG.info("USD runtime in mock mode; conversions return canned results")
        return MockBackend()
    if not requires_usd:
        return PxrBackend()
    raise BridgeError(
        "OpenUSD Python bindings (pxr) are not importable; install usd-core or set USDUNITY_USD_MODE=mock"
    )


__all__ = [
    "BackendReport",
    "ConversionBackend",
    "MockBackend",
    "PxrBackend",
    "select_backend",
]
