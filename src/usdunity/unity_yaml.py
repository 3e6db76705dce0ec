"""Read and write Unity's YAML dialect and ``.meta`` sidecars.

Unity files are not plain YAML: every document header carries a class tag and
an anchor (``--- !u!1 &123``), optionally followed by ``stripped``.  Headers are
split off with a regex and each body is handed to PyYAML on its own.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

import yaml

from .errors import FormatError
from .identifiers import is_guid
from .unity_model import CLASS_NAMES, FlowMap, MetaRecord, UnityDocument, UnityObject

LOG = logging.getLogger(__name__)

UNITY_YAML_HEADER = "%YAML 1.1\n%TAG !u! tag:unity3d.com,2011:\n"
_DOC_HEADER_RE = re.compile(r"^--- !u!(-?\d+) &(-?\d+)([^\n]*)$", re.MULTILINE)
_YAML_WIDTH = 2**31 - 1
# Hex scalars Unity writes unquoted; digit-only ones would otherwise load as (octal) ints.
_HEX_SCALAR_RE = re.compile(
    r"(\b(?:guid|_typelessdata|m_IndexBuffer):[ \t]*)([0-9A-Fa-f]+)(?=[ \t]*(?:[,}\r\n]|$))",
    re.MULTILINE,
)


class _UnityDumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


def _represent_flow_map(dumper: yaml.SafeDumper, data: FlowMap):
    return dumper.represent_mapping("tag:yaml.org,2002:map", dict(data), flow_style=True)


_UnityDumper.add_representer(FlowMap, _represent_flow_map)


def _dump_body(payload: Dict[str, Any]) -> str:
    return yaml.dump(
        payload,
        Dumper=_UnityDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=_YAML_WIDTH,
    )


# ---------------- Documents ----------------

def dump_document(document: UnityDocument) -> str:
    parts: List[str] = [UNITY_YAML_HEADER]
    for obj in document:
        suffix = " stripped" if obj.stripped else ""
        parts.append(f"--- !u!{obj.class_id} &{obj.file_id}{suffix}\n")
        parts.append(_dump_body({obj.type_name: obj.fields}))
    return "".join(parts)


def parse_document(text: str, *, source: str = "<string>") -> UnityDocument:
    """Parse a Unity scene/prefab/asset text file into a :class:`UnityDocument`."""
    if not isinstance(text, str):
        raise FormatError(f"{source}: expected text content")
    if not text.lstrip().startswith("%YAML"):
        raise FormatError(f"{source}: missing %YAML header; not a text-serialized Unity file")

    headers = list(_DOC_HEADER_RE.finditer(text))
    if not headers:
        raise FormatError(f"{source}: no '--- !u!<class> &<fileID>' documents found")

    document = UnityDocument()
    for idx, match in enumerate(headers):
        class_id = int(match.group(1))
        file_id = int(match.group(2))
        stripped = "stripped" in match.group(3)
        if file_id == 0:
            raise FormatError(f"{source}: document uses reserved fileID 0")
        end = headers[idx + 1].start() if idx + 1 < len(headers) else len(text)
        body = text[match.end():end]
        try:
            loaded = yaml.safe_load(_quote_hex_scalars(body))
        except yaml.YAMLError as exc:
            raise FormatError(f"{source}: malformed YAML in object &{file_id}: {exc}") from exc
        if not isinstance(loaded, dict) or len(loaded) != 1:
            raise FormatError(f"{source}: object &{file_id} must contain exactly one top-level type key")
        type_name, fields = next(iter(loaded.items()))
        if fields is None:
            fields = {}
        if not isinstance(fields, dict):
            raise FormatError(f"{source}: object &{file_id} ({type_name}) body is not a mapping")
        expected = CLASS_NAMES.get(class_id)
        if expected and expected != type_name:
            LOG.debug("%s: class %d labelled %s (expected %s)", source, class_id, type_name, expected)
        document.add(
            UnityObject(
                file_id=file_id,
                class_id=class_id,
                type_name=str(type_name),
                fields=fields,
                stripped=stripped,
            )
        )
    return document


def _quote_hex_scalars(text: str) -> str:
    return _HEX_SCALAR_RE.sub(r"\1'\2'", text)


# ---------------- Meta files ----------------

def dump_meta(meta: MetaRecord) -> str:
    if not is_guid(meta.guid):
        raise FormatError(f"Invalid GUID for meta record: {meta.guid!r}")
    lines = [
        f"fileFormatVersion: {int(meta.file_format_version)}\n",
        f"guid: {meta.guid}\n",
    ]
    if meta.folder_asset:
        lines.append("folderAsset: yes\n")
    text = "".join(lines)
    if meta.importer:
        text += _dump_body({meta.importer: meta.importer_settings or {}})
    return text


def parse_meta(text: str, *, source: str = "<meta>") -> MetaRecord:
    try:
        loaded = yaml.safe_load(_quote_hex_scalars(text))
    except yaml.YAMLError as exc:
        raise FormatError(f"{source}: malformed meta file: {exc}") from exc
    if not isinstance(loaded, dict):
        raise FormatError(f"{source}: meta file must be a mapping")
    guid = loaded.get("guid")
    if not is_guid(guid):
        raise FormatError(f"{source}: meta file has no valid guid (got {guid!r})")
    try:
        version = int(loaded.get("fileFormatVersion", 2))
    except (TypeError, ValueError) as exc:
        raise FormatError(f"{source}: invalid fileFormatVersion") from exc
    importer = ""
    settings: Dict[str, Any] = {}
    for key, value in loaded.items():
        if key.endswith("Importer") and isinstance(value, dict):
            importer, settings = key, value
            break
    return MetaRecord(
        guid=guid,
        file_format_version=version,
        importer=importer,
        importer_settings=settings,
        folder_asset=loaded.get("folderAsset") in (True, "yes"),
    )


__all__ = [
    "UNITY_YAML_HEADER",
    "dump_document",
    "dump_meta",
    "parse_document",
    "parse_meta",
]
