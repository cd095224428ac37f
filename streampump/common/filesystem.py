"""Filesystem helpers."""
from __future__ import annotations

from pathlib import Path


def resolve_under_root(root: Path, relative_path: str) -> Path:
    """Resolve *relative_path* beneath *root*, refusing paths that escape it."""

    base = root.resolve()
    candidate = (base / relative_path).resolve()
    if candidate != base and base not in candidate.parents:
        raise PermissionError(f"{relative_path} escapes {base}")
    return candidate


def file_size(path: Path) -> int:
    """Return the size of *path* in bytes."""

    return path.stat().st_size
