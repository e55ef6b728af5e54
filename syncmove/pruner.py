"""Removal of directories emptied by a migration.

Pruning is bounded by a root: nothing at or above ``root_boundary`` is ever
inspected or deleted.  Emptiness is re-checked immediately before each delete
and every failure is logged and skipped, so a concurrent writer dropping a
file into a directory simply keeps that directory alive.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from syncmove.utils.path_helpers import is_strictly_inside, is_subpath, path_depth

logger = logging.getLogger(__name__)


def is_empty_dir(path: Path) -> bool:
    """Return True if *path* is a directory with no entries at all.

    Raises :exc:`OSError` if the directory cannot be listed.
    """
    with os.scandir(path) as entries:
        return next(entries, None) is None


def _try_rmdir(path: Path) -> bool:
    """Delete *path* if it is still empty; return True on deletion."""
    try:
        if not is_empty_dir(path):
            return False
        path.rmdir()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("Could not remove directory %s: %s", path, exc)
        return False
    logger.info("Removed empty directory %s", path)
    return True


def _subdirectories(scope: Path) -> list[Path]:
    """All real directories below *scope*, deepest first.

    Symlinks and anything whose real location is not under *scope* (Windows
    junctions, mounted reparse points) are neither listed nor descended into.
    """
    found: list[Path] = []
    real_scope = scope.resolve()

    def _on_error(exc: OSError) -> None:
        logger.warning("Could not list %s: %s", exc.filename, exc)

    for dirpath, dirnames, _ in os.walk(scope, onerror=_on_error):
        base = Path(dirpath)
        kept: list[str] = []
        for name in dirnames:
            child = base / name
            if child.is_symlink() or not is_subpath(child.resolve(), real_scope):
                continue
            kept.append(name)
            found.append(child)
        dirnames[:] = kept

    found.sort(key=lambda p: (-path_depth(p), str(p)))
    return found


class DirectoryPruner:
    """Stateless bottom-up pruner; every call carries its own boundary."""

    def prune(self, root_boundary: Path, scope: Path) -> list[Path]:
        """Remove empty directories in and above *scope*, below *root_boundary*.

        1. Every directory under *scope*, deepest first.
        2. *scope* itself, unless it is the boundary.
        3. Ancestors of *scope*, stopping at the first missing or non-empty
           one and never reaching *root_boundary*.

        Returns the directories that were removed, in removal order.
        """
        removed: list[Path] = []

        if not scope.is_dir():
            logger.debug("Prune scope %s no longer exists", scope)
            return removed
        # Compare real locations so a symlinked scope cannot reach outside
        if not is_subpath(scope.resolve(), root_boundary.resolve()):
            logger.warning("Prune scope %s is outside %s — skipped", scope, root_boundary)
            return removed

        for directory in _subdirectories(scope):
            if _try_rmdir(directory):
                removed.append(directory)

        if is_strictly_inside(scope, root_boundary):
            if not _try_rmdir(scope):
                return removed
            removed.append(scope)

            current = scope.parent
            while is_strictly_inside(current, root_boundary):
                if not current.exists():
                    break
                if not _try_rmdir(current):
                    break
                removed.append(current)
                current = current.parent

        return removed
