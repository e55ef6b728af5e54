"""Command-line interface for SyncMove."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from syncmove.cancellation import CancellationToken, interrupt_cancels
from syncmove.classifier import pattern_matcher
from syncmove.config import ConfigManager, MigrationSettings
from syncmove.errors import ConfigError
from syncmove.logbook import configure_logging, default_log_path
from syncmove.monitor import PollObservation, StabilityMonitor
from syncmove.probe import ShellSyncStatusProbe, SyncStatusProbe
from syncmove.pruner import DirectoryPruner
from syncmove.transfer import RunSummary, TransferOrchestrator, TransferStatus, TransferTask
from syncmove.utils.path_helpers import (
    check_path_overlap,
    format_elapsed,
    normalize_local_path,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Move files into a cloud-synced folder, deleting each source only once it has synced.",
    add_completion=False,
)
config_app = typer.Typer(help="Show or change saved defaults.", add_completion=False)
app.add_typer(config_app, name="config")

_STATUS_LABELS = {
    TransferStatus.DELETED: ("moved", typer.colors.GREEN),
    TransferStatus.PRESERVED: ("kept (sync timeout)", typer.colors.YELLOW),
    TransferStatus.FAILED: ("failed", typer.colors.RED),
}


def make_probe(settings: MigrationSettings) -> SyncStatusProbe:
    """Build the production sync-status probe."""
    return ShellSyncStatusProbe(timeout=settings.probe_timeout)


class ConsoleReporter:
    """Renders pipeline callbacks as a one-line-per-file console status."""

    def __init__(self) -> None:
        self._index = 0

    def on_task_update(self, task: TransferTask) -> None:
        if task.status == TransferStatus.COPYING:
            self._index += 1
            return
        if not task.status.is_terminal:
            return
        label, color = _STATUS_LABELS[task.status]
        typer.echo("\r", nl=False)
        typer.secho(
            f"[{self._index}] {label}: {task.source_path}",
            fg=color,
        )

    def on_poll(self, obs: PollObservation) -> None:
        status = obs.raw_status or "(no status)"
        typer.echo(
            f"\r[{format_elapsed(obs.run_elapsed)}] {status} "
            f"({obs.stable_count}/{obs.stable_required}) {obs.dest_path.name}\033[K",
            nl=False,
        )


def _resolve_root(path: Path, label: str) -> Path:
    resolved = normalize_local_path(path)
    if not resolved.exists():
        typer.secho(f"Error: {label} does not exist: {resolved}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    if not resolved.is_dir():
        typer.secho(f"Error: {label} is not a directory: {resolved}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return resolved


@app.command()
def migrate(
    source: Path = typer.Argument(..., help="Directory to move files out of"),
    dest: Path = typer.Argument(..., help="Cloud-synced directory to move files into"),
    max_files: Optional[str] = typer.Option(
        None, "--max-files", "-n", help="Maximum files to move: a positive number or 'all'"
    ),
    poll_interval: Optional[float] = typer.Option(
        None, "--poll-interval", help="Seconds between sync-status checks"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for a file to sync before keeping its source"
    ),
    stable_polls: Optional[int] = typer.Option(
        None, "--stable-polls", help="Consecutive 'synced' checks required before deleting"
    ),
    done_pattern: Optional[str] = typer.Option(
        None, "--done-pattern", help="Regex (full match, case-insensitive) for a synced status"
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Log file path (default: timestamped file in the log dir)"
    ),
    prune: Optional[bool] = typer.Option(
        None, "--prune/--no-prune", help="Remove source directories left empty"
    ),
    prune_whole_tree: Optional[bool] = typer.Option(
        None,
        "--prune-whole-tree/--prune-parent-only",
        help="Prune the whole source tree instead of only each file's folder",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="List files that would be moved without touching them"
    ),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", help="Directory holding config.json (default: ~/.syncmove)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """
    Move files one at a time into a cloud-synced destination.

    Each file is copied, then the destination's sync status is polled until
    it has been reported as available several times in a row.  Only then is
    the source deleted.  Files that do not sync within the timeout are kept.
    Press Ctrl+C once to stop after the current file.
    """
    source_root = _resolve_root(source, "source")
    dest_root = _resolve_root(dest, "destination")

    overlap = check_path_overlap(source_root, dest_root)
    if overlap:
        typer.secho(f"Error: {overlap}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    config = ConfigManager(base_dir=config_dir)
    try:
        settings = MigrationSettings.from_config(
            config.get_all(),
            source_root,
            dest_root,
            max_files=max_files,
            poll_interval=poll_interval,
            timeout=timeout,
            stable_polls_required=stable_polls,
            done_pattern=done_pattern,
            prune_empty_dirs=prune,
            prune_whole_tree=prune_whole_tree,
            dry_run=dry_run,
            log_file=log_file,
        )
    except ConfigError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if settings.log_file is None:
        settings.log_file = default_log_path(Path(config.get("log_dir")).expanduser())
    configure_logging(settings.log_file, verbose=verbose)

    if settings.dry_run:
        typer.echo("DRY RUN - no files will be moved\n")
    typer.echo(f"Log: {settings.log_file}")

    summary = run_migration(settings, make_probe(settings))

    plural = "s" if summary.deleted != 1 else ""
    typer.echo(
        f"\n{summary.deleted} file{plural} moved, {summary.preserved} kept, "
        f"{summary.failed} failed, {len(summary.pruned_dirs)} empty directories removed"
    )
    if summary.cancelled:
        typer.echo("Stopped early at your request.")


def run_migration(settings: MigrationSettings, probe: SyncStatusProbe) -> RunSummary:
    """Wire the pipeline from *settings* and run it until done or interrupted."""
    token = CancellationToken()
    monitor = StabilityMonitor(
        probe=probe,
        done_matcher=pattern_matcher(settings.done_pattern),
        in_progress_matcher=pattern_matcher(settings.in_progress_pattern),
        stable_polls_required=settings.stable_polls_required,
        poll_interval=settings.poll_interval,
        timeout=settings.timeout,
    )
    orchestrator = TransferOrchestrator(
        source_root=settings.source_root,
        dest_root=settings.dest_root,
        monitor=monitor,
        pruner=DirectoryPruner(),
        cancel_token=token,
        max_files=settings.max_files,
        prune_empty_dirs=settings.prune_empty_dirs,
        prune_whole_tree=settings.prune_whole_tree,
        dry_run=settings.dry_run,
    )

    reporter = ConsoleReporter()
    if not settings.dry_run:
        orchestrator.on_task_update = reporter.on_task_update
        monitor.on_poll = reporter.on_poll

    with interrupt_cancels(token):
        return orchestrator.run()


@config_app.command("show")
def config_show(
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directory holding config.json"),
) -> None:
    """Print the saved defaults."""
    config = ConfigManager(base_dir=config_dir)
    typer.echo(f"# {config.path}")
    typer.echo(json.dumps(config.get_all(), indent=2))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name"),
    value: str = typer.Argument(..., help="New value (parsed as JSON where possible)"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directory holding config.json"),
) -> None:
    """Save a default used by future runs."""
    config = ConfigManager(base_dir=config_dir)
    if key not in config.get_all():
        raise typer.BadParameter(f"unknown setting '{key}'", param_hint="KEY")
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    merged = {**config.get_all(), key: parsed}
    try:
        MigrationSettings.from_config(merged, Path.cwd(), Path.cwd())
    except ConfigError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    config.set(key, parsed)
    typer.echo(f"{key} = {json.dumps(parsed)}")


if __name__ == "__main__":
    app()
