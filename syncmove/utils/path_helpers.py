"""Local path normalisation and validation utilities."""

from __future__ import annotations

import os
from pathlib import Path


def normalize_local_path(path: str | os.PathLike[str]) -> Path:
    """Resolve *path* to an absolute ``pathlib.Path`` on the local filesystem."""
    return Path(path).expanduser().resolve()


def is_subpath(child: Path, parent: Path) -> bool:
    """Return True if *child* is *parent* or lies somewhere below it."""
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False


def is_strictly_inside(child: Path, parent: Path) -> bool:
    """Return True if *child* lies below *parent* and is not *parent* itself."""
    return child != parent and is_subpath(child, parent)


def path_depth(path: Path) -> int:
    """Number of segments in *path* (``/a/b`` has depth 3 on POSIX)."""
    return len(path.parts)


def check_path_overlap(source_root: Path, dest_root: Path) -> str | None:
    """Describe an unsafe relationship between the two roots, or return None.

    Moving files into a tree that contains the source (or vice versa) would
    re-enumerate freshly copied files, so both cases are rejected.
    """
    if source_root == dest_root:
        return f"destination '{dest_root}' is the same as source '{source_root}'"
    if is_subpath(dest_root, source_root):
        return f"destination '{dest_root}' is inside source '{source_root}'"
    if is_subpath(source_root, dest_root):
        return f"source '{source_root}' is inside destination '{dest_root}'"
    return None


def human_readable_size(size_bytes: int | float) -> str:
    """Convert a byte count to a human-readable string (e.g. "4.2 MB").

    Uses 1024-based units (KiB/MiB/GiB) but labels them KB/MB/GB for
    familiarity with everyday usage.
    """
    if size_bytes < 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{int(size_bytes)} B"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``HH:MM:SS`` (hours may exceed 24)."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
