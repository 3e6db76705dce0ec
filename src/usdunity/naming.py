from __future__ import annotations

import re
from typing import Dict, Optional


def sanitize_name(raw_name, fallback=None):
    """Make a USD-legal prim name (deterministic; no time-based suffix)."""
    base = str(raw_name or fallback or "Unnamed")
    base = base.encode("ascii", "ignore").decode("ascii")
    name = re.sub(r"[^A-Za-z0-9_]", "_", base)
    name = re.sub(r"_+", "_", name).strip("_")
    if not name:
        name = str(fallback or "Unnamed")
    if name[0].isdigit():
        name = "_" + name
    return name[:63]


def sanitize_filename(raw_name: Optional[str], fallback: str = "Asset") -> str:
    """File-system safe asset name; keeps spaces and dashes Unity users expect."""
    base = str(raw_name or "").strip()
    name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", base).rstrip(" .")
    return name or fallback


def unique_name(base: str, used: Dict[str, int]) -> str:
    """Generate a unique name by appending an incrementing suffix when needed."""
    count = used.get(base, 0)
    candidate = base if count == 0 else f"{base}_{count}"
    while count and candidate in used:
        count += 1
        candidate = f"{base}_{count}"
    used[base] = count + 1
    if candidate != base:
        used.setdefault(candidate, 1)
    return candidate


__all__ = ["sanitize_filename", "sanitize_name", "unique_name"]
