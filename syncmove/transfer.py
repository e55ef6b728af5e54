"""Migration pipeline for SyncMove.

Moves files one at a time from a source tree into a cloud-synced destination
tree:

- Copy (``shutil.copy2``, overwriting) and verify the destination size
- Wait for the cloud agent to report the copy as stably synced
- Delete the source only after that confirmation
- Prune directories the move left empty
- Cooperative cancellation between files, per-task status callbacks

Transfers are strictly sequential: the sync agent behind the destination is
the bottleneck and degrades under concurrent load.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Iterable

from syncmove.cancellation import CancellationToken
from syncmove.errors import CopyError
from syncmove.monitor import StabilityMonitor, StabilityOutcome
from syncmove.pruner import DirectoryPruner
from syncmove.utils.path_helpers import human_readable_size

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TransferStatus(Enum):
    """Lifecycle state of a TransferTask."""

    PENDING = auto()
    COPYING = auto()
    CONFIRMING = auto()
    DELETED = auto()    # synced and source removed
    PRESERVED = auto()  # sync not confirmed in time, source kept
    FAILED = auto()     # copy or source delete failed

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.DELETED, TransferStatus.PRESERVED, TransferStatus.FAILED)


# ---------------------------------------------------------------------------
# TransferTask / RunSummary
# ---------------------------------------------------------------------------


@dataclass
class TransferTask:
    """One file moving through the pipeline."""

    source_path: Path
    dest_path: Path
    started_at: float
    status: TransferStatus = TransferStatus.PENDING
    error: str | None = None
    file_size: int = 0
    pruned: list[Path] = field(default_factory=list)


@dataclass
class RunSummary:
    """Totals for one orchestrator run."""

    total_found: int = 0
    attempted: int = 0
    deleted: int = 0
    preserved: int = 0
    failed: int = 0
    cancelled: bool = False
    pruned_dirs: list[Path] = field(default_factory=list)
    tasks: list[TransferTask] = field(default_factory=list)

    def record(self, task: TransferTask) -> None:
        self.tasks.append(task)
        self.pruned_dirs.extend(task.pruned)
        if task.status == TransferStatus.DELETED:
            self.deleted += 1
        elif task.status == TransferStatus.PRESERVED:
            self.preserved += 1
        elif task.status == TransferStatus.FAILED:
            self.failed += 1


# ---------------------------------------------------------------------------
# Enumeration
# ---------------------------------------------------------------------------


def enumerate_source_files(source_root: Path) -> list[Path]:
    """All regular files under *source_root*, sorted by full path."""
    files: list[Path] = []

    def _on_error(exc: OSError) -> None:
        logger.warning("Could not list %s: %s", exc.filename, exc)

    for dirpath, _, filenames in os.walk(source_root, onerror=_on_error):
        base = Path(dirpath)
        for name in filenames:
            path = base / name
            if path.is_file() and not path.is_symlink():
                files.append(path)

    files.sort(key=str)
    return files


def select_files(files: list[Path], max_files: int | None) -> list[Path]:
    """Apply the max-files cap; ``None`` keeps everything."""
    if max_files is None:
        return list(files)
    return files[:max_files]


# ---------------------------------------------------------------------------
# TransferOrchestrator
# ---------------------------------------------------------------------------


class TransferOrchestrator:
    """Sequential copy → confirm → delete → prune pipeline.

    Runs entirely on the calling thread.  Per-file failures are logged and
    recorded on the task; only the cancellation token stops a run early.
    """

    def __init__(
        self,
        source_root: Path,
        dest_root: Path,
        monitor: StabilityMonitor,
        pruner: DirectoryPruner | None = None,
        cancel_token: CancellationToken | None = None,
        max_files: int | None = None,
        prune_empty_dirs: bool = True,
        prune_whole_tree: bool = False,
        dry_run: bool = False,
        clock: Callable[[], float] = time.monotonic,
        on_task_update: Callable[[TransferTask], None] | None = None,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            source_root: Tree files are moved out of; also the prune boundary.
            dest_root: Cloud-synced tree files are moved into.
            monitor: Decides when each destination copy is synced.
            pruner: Removes emptied source directories.
            cancel_token: Checked before each file is started.
            max_files: Cap on files attempted; ``None`` means all.
            prune_empty_dirs: Prune after each successful delete.
            prune_whole_tree: Prune the whole source root instead of only the
                file's parent directory.
            dry_run: Log what would be migrated without touching anything.
            clock: Time source shared with the monitor.
            on_task_update: Called on every task status change.
        """
        self.source_root = source_root
        self.dest_root = dest_root
        self._monitor = monitor
        self._pruner = pruner or DirectoryPruner()
        self._cancel_token = cancel_token or CancellationToken()
        self.max_files = max_files
        self.prune_empty_dirs = prune_empty_dirs
        self.prune_whole_tree = prune_whole_tree
        self.dry_run = dry_run
        self._clock = clock
        self.on_task_update = on_task_update

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, files: Iterable[Path] | None = None) -> RunSummary:
        """Migrate *files* (default: every file under the source root).

        Files are processed in ascending path order up to ``max_files``.
        """
        candidates = sorted(files, key=str) if files is not None else enumerate_source_files(self.source_root)
        selected = select_files(candidates, self.max_files)
        summary = RunSummary(total_found=len(candidates))

        logger.info(
            "%s %d of %d file(s): %s → %s",
            "Dry run over" if self.dry_run else "Migrating",
            len(selected),
            len(candidates),
            self.source_root,
            self.dest_root,
        )

        for source in selected:
            if self._cancel_token.is_cancelled:
                summary.cancelled = True
                logger.info("Stopping before %s — cancellation requested", source)
                break

            summary.attempted += 1
            if self.dry_run:
                logger.info("Would migrate %s → %s", source, self.destination_for(source))
                continue

            task = self.process_file(source)
            summary.record(task)

        logger.info(
            "Run finished: %d deleted, %d preserved, %d failed, %d directories pruned%s",
            summary.deleted,
            summary.preserved,
            summary.failed,
            len(summary.pruned_dirs),
            " (cancelled)" if summary.cancelled else "",
        )
        return summary

    def destination_for(self, source: Path) -> Path:
        """Re-root *source* under the destination root."""
        return self.dest_root / source.relative_to(self.source_root)

    def process_file(self, source: Path) -> TransferTask:
        """Run one file through the whole pipeline and return its task."""
        task = TransferTask(
            source_path=source,
            dest_path=self.destination_for(source),
            started_at=self._clock(),
        )

        self._set_status(task, TransferStatus.COPYING)
        try:
            self._copy(task)
        except CopyError as exc:
            task.error = str(exc)
            logger.error("Copy failed for %s: %s", source, exc)
            self._set_status(task, TransferStatus.FAILED)
            return task

        self._set_status(task, TransferStatus.CONFIRMING)
        outcome = self._monitor.wait_until_synced(task.dest_path, task.started_at)

        if outcome is StabilityOutcome.TIMED_OUT:
            logger.warning("Sync not confirmed, keeping source: %s", source)
            self._set_status(task, TransferStatus.PRESERVED)
            return task

        try:
            source.unlink()
        except OSError as exc:
            task.error = str(exc)
            logger.error("Synced but could not delete source %s: %s", source, exc)
            self._set_status(task, TransferStatus.FAILED)
            return task

        logger.info("Moved %s → %s", source, task.dest_path)
        if self.prune_empty_dirs:
            scope = self.source_root if self.prune_whole_tree else source.parent
            task.pruned = self._pruner.prune(self.source_root, scope)
        self._set_status(task, TransferStatus.DELETED)
        return task

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    def _copy(self, task: TransferTask) -> None:
        """Copy the source over the destination and verify its size.

        Raises :exc:`CopyError` on any filesystem failure.
        """
        try:
            task.file_size = task.source_path.stat().st_size
            task.dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(task.source_path, task.dest_path)
            copied_size = task.dest_path.stat().st_size
        except OSError as exc:
            raise CopyError(str(exc)) from exc

        if copied_size != task.file_size:
            raise CopyError(
                f"size mismatch after copy: source {task.file_size} bytes, "
                f"destination {copied_size} bytes"
            )

        logger.info(
            "Copied %s → %s (%s)",
            task.source_path,
            task.dest_path,
            human_readable_size(task.file_size),
        )

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _set_status(self, task: TransferTask, status: TransferStatus) -> None:
        task.status = status
        if self.on_task_update:
            try:
                self.on_task_update(task)
            except Exception:
                logger.exception("Exception in on_task_update callback")
