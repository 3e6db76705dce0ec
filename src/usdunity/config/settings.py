from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

log = logging.getLogger(__name__)

_UP_AXES = ("Y", "Z")
_INVALID_PATH_CHARS = '<>:"\\|?*'


def _normalize_asset_root(value: str) -> str:
    text = str(value or "").strip().replace("\\", "/").strip("/")
    if not text:
        raise ValueError("asset_root must not be empty")
    if any(ch in text for ch in _INVALID_PATH_CHARS):
        raise ValueError(f"asset_root contains invalid characters: {value!r}")
    parts = [part for part in text.split("/") if part]
    if any(part in (".", "..") for part in parts):
        raise ValueError(f"asset_root must not contain relative segments: {value!r}")
    if parts[0] != "Assets":
        parts.insert(0, "Assets")
    return "/".join(parts)


def _normalize_up_axis(axis: Optional[str]) -> str:
    axis_text = str(axis or "").strip().upper()
    if axis_text not in _UP_AXES:
        raise ValueError("up axis must be one of Y or Z.")
    return axis_text


@dataclass(frozen=True)
class ConversionSettings:
    """Knobs shared by both translators and the package writer."""

    guid_namespace: str = "usdunity"
    meta_format_version: int = 2
    asset_root: str = "Assets/USD_Import"
    scene_name: Optional[str] = None
    output_up_axis: str = "Y"
    output_meters_per_unit: float = 1.0
    unity_layer: int = 0
    include_folder_entries: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "asset_root", _normalize_asset_root(self.asset_root))
        object.__setattr__(self, "output_up_axis", _normalize_up_axis(self.output_up_axis))
        meters = float(self.output_meters_per_unit)
        if meters <= 0.0:
            raise ValueError("output_meters_per_unit must be greater than zero.")
        object.__setattr__(self, "output_meters_per_unit", meters)
        if int(self.meta_format_version) <= 0:
            raise ValueError("meta_format_version must be a positive integer.")
        object.__setattr__(self, "meta_format_version", int(self.meta_format_version))
        if not str(self.guid_namespace or "").strip():
            raise ValueError("guid_namespace must not be empty.")

    def with_overrides(self, **changes: Any) -> "ConversionSettings":
        cleaned = {key: value for key, value in changes.items() if value is not None}
        if not cleaned:
            return self
        return replace(self, **cleaned)

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "ConversionSettings":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                log.warning("Ignoring unknown settings key '%s'", key)
                continue
            kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: Path) -> "ConversionSettings":
        text = Path(path).read_text(encoding="utf-8")
        data = cls._load_data_from_text(text, suffix=Path(path).suffix)
        return cls.from_mapping(data)

    @classmethod
    def from_text(cls, text: str, *, suffix: str) -> "ConversionSettings":
        return cls.from_mapping(cls._load_data_from_text(text, suffix=suffix))

    @staticmethod
    def _load_data_from_text(text: str, *, suffix: str) -> Dict[str, Any]:
        ext = (suffix or "").lower()
        if ext in {".yaml", ".yml"}:
            loaded = yaml.safe_load(text)
            if loaded is None:
                return {}
            if not isinstance(loaded, dict):
                raise ValueError("YAML settings must define a mapping at the top level")
            return loaded
        if ext == ".json":
            loaded = json.loads(text)
            if not isinstance(loaded, dict):
                raise ValueError("JSON settings must define a mapping at the top level")
            return loaded
        raise ValueError(f"Unsupported settings file type: {suffix}")


CONVERSION_DEFAULTS = ConversionSettings()


__all__ = [
    "ConversionSettings",
    "CONVERSION_DEFAULTS",
]
