from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterator, Union

from .errors import IoError

PathLike = Union[str, Path]


def path_stem(path: PathLike) -> str:
    return PurePosixPath(str(path).replace("\\", "/")).stem


def normalize_member_path(name: str) -> PurePosixPath:
    """Return ``name`` as a relative POSIX path, rejecting anything that escapes its root."""
    text = str(name or "").replace("\\", "/")
    if not text.strip():
        raise IoError("Empty archive member path")
    if text.startswith("/") or (len(text) > 1 and text[1] == ":"):
        raise IoError(f"Archive path '{name}' is absolute")
    parts = []
    for part in text.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise IoError(f"Archive path '{name}' escapes the destination directory")
        parts.append(part)
    if not parts:
        raise IoError(f"Archive path '{name}' does not name a file")
    return PurePosixPath(*parts)


def safe_join(root: PathLike, relative: str) -> Path:
    """Join an untrusted relative path onto ``root`` and confirm it stays inside."""
    root_path = Path(root).resolve()
    candidate = root_path.joinpath(*normalize_member_path(relative).parts).resolve()
    if candidate != root_path and root_path not in candidate.parents:
        raise IoError(f"Path '{relative}' escapes {root_path}")
    return candidate


@contextlib.contextmanager
def staging_directory(near: PathLike, prefix: str = ".usdunity-") -> Iterator[Path]:
    """Temporary directory beside ``near`` (same filesystem), removed on every exit path."""
    parent = Path(near).resolve().parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
        tmp = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent)))
    except OSError as exc:
        raise IoError(f"Cannot create a staging directory in {parent}: {exc}") from exc
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@contextlib.contextmanager
def atomic_output(dest: PathLike) -> Iterator[Path]:
    """Yield a temporary path; on success it replaces ``dest`` in a single rename.

    If the body raises, ``dest`` is left untouched and the temporary file is removed.
    """
    dest_path = Path(dest).resolve()
    if dest_path.is_dir():
        raise IoError(f"Destination {dest_path} is a directory")
    with staging_directory(dest_path) as tmp:
        staged = tmp / dest_path.name
        yield staged
        if not staged.exists():
            raise IoError(f"Nothing was written for {dest_path}")
        try:
            os.replace(staged, dest_path)
        except OSError as exc:
            raise IoError(f"Failed to move output into place at {dest_path}: {exc}") from exc


__all__ = [
    "PathLike",
    "atomic_output",
    "normalize_member_path",
    "path_stem",
    "safe_join",
    "staging_directory",
]
