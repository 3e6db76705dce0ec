"""Pack and unpack ``.unitypackage`` archives.

A package is a gzip-compressed tar.  Unity lays each asset out in a folder
named after its GUID::

    <guid>/asset         file contents (absent for folders)
    <guid>/asset.meta    meta sidecar
    <guid>/pathname      project-relative path, e.g. Assets/Foo/Bar.unity
    <guid>/preview.png   optional thumbnail

Readers also accept the ``<pathname>/asset`` layout (no ``pathname`` member)
and loose files stored at their project path.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import tarfile
import zlib
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import FormatError, IoError
from .io_utils import PathLike, atomic_output, normalize_member_path, safe_join, staging_directory
from .unity_model import MetaRecord
from .unity_yaml import dump_meta, parse_meta

LOG = logging.getLogger(__name__)

_ROLE_ASSET = "asset"
_ROLE_META = "asset.meta"
_ROLE_PATHNAME = "pathname"
_ROLE_PREVIEW = "preview.png"
_ROLES = (_ROLE_ASSET, _ROLE_META, _ROLE_PATHNAME, _ROLE_PREVIEW)

_ARCHIVE_ERRORS = (tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error)


@dataclass
class PackageEntry:
    pathname: str
    meta: Optional[MetaRecord]
    asset: Optional[bytes] = None
    preview: Optional[bytes] = None
    raw_meta: Optional[bytes] = None

    def meta_bytes(self) -> bytes:
        if self.raw_meta is not None:
            return self.raw_meta
        if self.meta is None:
            raise FormatError(f"Package entry {self.pathname} has no meta record")
        return dump_meta(self.meta).encode("utf-8")

    @property
    def guid(self) -> Optional[str]:
        return self.meta.guid if self.meta else None

    @property
    def is_folder(self) -> bool:
        return self.asset is None and bool(self.meta and self.meta.folder_asset)


# ---------------- Writing ----------------

def _tar_info(name: str, size: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.size = size
    info.mtime = 0
    info.mode = 0o644
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _package_members(entries: Iterable[PackageEntry]) -> List[Tuple[str, bytes]]:
    by_guid: Dict[str, PackageEntry] = {}
    for entry in entries:
        if entry.meta is None:
            raise FormatError(f"Package entry {entry.pathname} has no meta record")
        normalize_member_path(entry.pathname)
        previous = by_guid.get(entry.meta.guid)
        if previous is not None:
            raise FormatError(
                f"GUID {entry.meta.guid} is shared by {previous.pathname} and {entry.pathname}"
            )
        if entry.asset is None and not entry.meta.folder_asset:
            raise FormatError(f"Package entry {entry.pathname} has neither content nor folderAsset")
        by_guid[entry.meta.guid] = entry

    members: List[Tuple[str, bytes]] = []
    for guid in sorted(by_guid):
        entry = by_guid[guid]
        if entry.asset is not None:
            members.append((f"{guid}/{_ROLE_ASSET}", entry.asset))
        members.append((f"{guid}/{_ROLE_META}", entry.meta_bytes()))
        members.append((f"{guid}/{_ROLE_PATHNAME}", entry.pathname.encode("utf-8")))
        if entry.preview is not None:
            members.append((f"{guid}/{_ROLE_PREVIEW}", entry.preview))
    return members


def write_package(entries: Iterable[PackageEntry], dest_path: PathLike) -> Path:
    """Write ``entries`` as a gzip tar; identical input yields identical bytes."""
    members = _package_members(entries)
    dest = Path(dest_path)
    with atomic_output(dest) as staged:
        try:
            with open(staged, "wb") as raw, gzip.GzipFile(
                filename="", mode="wb", fileobj=raw, mtime=0
            ) as gz, tarfile.open(fileobj=gz, mode="w", format=tarfile.GNU_FORMAT) as tar:
                for name, data in members:
                    tar.addfile(_tar_info(name, len(data)), io.BytesIO(data))
        except OSError as exc:
            raise IoError(f"Failed to write package {dest}: {exc}") from exc
    LOG.info("Wrote %d package member(s) to %s", len(members), dest)
    return dest


# ---------------- Reading ----------------

def _decode_pathname(data: bytes, source: str) -> str:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError(f"{source}: pathname is not UTF-8") from exc
    first = text.replace("\x00", "").splitlines()[0] if text.strip() else ""
    return first.strip()


def _parse_member_meta(data: bytes, source: str) -> MetaRecord:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise FormatError(f"{source}: meta file is not UTF-8") from exc
    return parse_meta(text, source=source)


def read_package(archive_path: PathLike) -> List[PackageEntry]:
    """Stream the archive members into entries.

    Raises :class:`FormatError` for non-gzip/non-tar input and :class:`IoError`
    for member paths that would escape the extraction root.
    """
    groups: "OrderedDict[str, Dict[str, bytes]]" = OrderedDict()
    loose: "OrderedDict[str, bytes]" = OrderedDict()
    try:
        with tarfile.open(str(archive_path), mode="r|gz") as tar:
            for member in tar:
                rel = normalize_member_path(member.name)
                if member.isdir():
                    continue
                if not member.isfile():
                    LOG.warning("Skipping non-regular archive member %s", member.name)
                    continue
                handle = tar.extractfile(member)
                data = handle.read() if handle is not None else b""
                if len(rel.parts) >= 2 and rel.name in _ROLES:
                    groups.setdefault(str(rel.parent), {})[rel.name] = data
                else:
                    loose[str(rel)] = data
    except _ARCHIVE_ERRORS as exc:
        raise FormatError(f"{archive_path} is not a gzip-compressed tar archive: {exc}") from exc

    entries: List[PackageEntry] = []
    for folder, roles in groups.items():
        meta = None
        if _ROLE_META in roles:
            meta = _parse_member_meta(roles[_ROLE_META], f"{folder}/{_ROLE_META}")
        if _ROLE_PATHNAME in roles:
            pathname = _decode_pathname(roles[_ROLE_PATHNAME], f"{folder}/{_ROLE_PATHNAME}")
        else:
            pathname = folder
        pathname = str(normalize_member_path(pathname))
        if meta is None:
            LOG.warning("Package asset %s has no meta file", pathname)
        elif folder != pathname and folder != meta.guid:
            LOG.debug("Folder %s does not match GUID %s for %s", folder, meta.guid, pathname)
        entries.append(
            PackageEntry(
                pathname=pathname,
                meta=meta,
                asset=roles.get(_ROLE_ASSET),
                preview=roles.get(_ROLE_PREVIEW),
                raw_meta=roles.get(_ROLE_META),
            )
        )

    for name, data in loose.items():
        if name.endswith(".meta"):
            if name[: -len(".meta")] not in loose:
                entries.append(
                    PackageEntry(pathname=name[: -len(".meta")], meta=_parse_member_meta(data, name), raw_meta=data)
                )
            continue
        meta_blob = loose.get(f"{name}.meta")
        meta = _parse_member_meta(meta_blob, f"{name}.meta") if meta_blob is not None else None
        entries.append(PackageEntry(pathname=name, meta=meta, asset=data, raw_meta=meta_blob))

    if not entries:
        raise FormatError(f"{archive_path} contains no assets")
    return entries


def extract_package(archive_path: PathLike, output_dir: PathLike) -> List[Path]:
    """Materialize every asset at ``output_dir/<pathname>`` with its ``.meta`` beside it.

    The whole archive is read and validated before anything lands in
    ``output_dir``; files are staged next to it and moved in at the end.
    """
    entries = read_package(archive_path)
    out = Path(output_dir)
    try:
        out.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IoError(f"Cannot create output directory {out}: {exc}") from exc

    planned: List[Tuple[PurePosixPath, Path, Optional[bytes]]] = []
    folders: List[Path] = []
    for entry in entries:
        target = safe_join(out, entry.pathname)
        rel = normalize_member_path(entry.pathname)
        if entry.is_folder:
            folders.append(target)
        elif entry.asset is not None:
            planned.append((rel, target, entry.asset))
        if entry.meta is not None:
            meta_rel = rel.with_name(rel.name + ".meta")
            planned.append((meta_rel, safe_join(out, str(meta_rel)), entry.meta_bytes()))

    written: List[Path] = []
    with staging_directory(out / ".usdunity-extract") as staging:
        try:
            for rel, _target, data in planned:
                staged = staging.joinpath(*rel.parts)
                staged.parent.mkdir(parents=True, exist_ok=True)
                staged.write_bytes(data)
            for folder in folders:
                folder.mkdir(parents=True, exist_ok=True)
            for rel, target, _data in planned:
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staging.joinpath(*rel.parts), target)
                written.append(target)
        except OSError as exc:
            raise IoError(f"Failed to extract {archive_path} into {out}: {exc}") from exc
    LOG.info("Extracted %d file(s) from %s into %s", len(written), archive_path, out)
    return written


__all__ = [
    "PackageEntry",
    "extract_package",
    "read_package",
    "write_package",
]
