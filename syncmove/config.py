"""Configuration for SyncMove.

Defaults live in ``~/.syncmove/config.json``; command-line options override
them per run.  :class:`MigrationSettings` is the validated, typed view the
pipeline consumes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from syncmove.classifier import (
    DEFAULT_DONE_PATTERN,
    DEFAULT_IN_PROGRESS_PATTERN,
    pattern_matcher,
)
from syncmove.errors import ConfigError

logger = logging.getLogger(__name__)

ALL_FILES = "all"

POLL_INTERVAL_BOUNDS = (0.5, 3600.0)
TIMEOUT_BOUNDS = (1.0, 7 * 24 * 3600.0)
STABLE_POLLS_BOUNDS = (1, 100)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: dict[str, Any] = {
    "poll_interval": 5.0,
    "timeout": 1800.0,
    "stable_polls_required": 2,
    "done_pattern": DEFAULT_DONE_PATTERN,
    "in_progress_pattern": DEFAULT_IN_PROGRESS_PATTERN,
    "prune_empty_dirs": True,
    "prune_whole_tree": False,
    "max_files": ALL_FILES,
    "log_dir": str(Path.home() / ".syncmove" / "logs"),
    "probe_timeout": 30.0,
}


def parse_max_files(value: Any) -> int | None:
    """Convert a max-files value to a positive int, or None for "all"."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip().lower()
        if text == ALL_FILES:
            return None
        try:
            value = int(text)
        except ValueError:
            raise ConfigError(
                f"max files must be a positive integer or '{ALL_FILES}', got {value!r}"
            ) from None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(
            f"max files must be a positive integer or '{ALL_FILES}', got {value!r}"
        )
    return value


# ---------------------------------------------------------------------------
# MigrationSettings
# ---------------------------------------------------------------------------


@dataclass
class MigrationSettings:
    """Everything a single migration run needs to know."""

    source_root: Path
    dest_root: Path
    max_files: int | None = None
    poll_interval: float = DEFAULT_CONFIG["poll_interval"]
    timeout: float = DEFAULT_CONFIG["timeout"]
    stable_polls_required: int = DEFAULT_CONFIG["stable_polls_required"]
    done_pattern: str = DEFAULT_DONE_PATTERN
    in_progress_pattern: str = DEFAULT_IN_PROGRESS_PATTERN
    prune_empty_dirs: bool = True
    prune_whole_tree: bool = False
    dry_run: bool = False
    log_file: Path | None = None
    probe_timeout: float = DEFAULT_CONFIG["probe_timeout"]

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        source_root: Path,
        dest_root: Path,
        **overrides: Any,
    ) -> MigrationSettings:
        """Build settings from a config dict; ``None`` overrides are ignored."""
        merged = dict(DEFAULT_CONFIG)
        merged.update(config)
        merged.update({k: v for k, v in overrides.items() if v is not None})

        try:
            settings = cls(
                source_root=source_root,
                dest_root=dest_root,
                max_files=parse_max_files(merged["max_files"]),
                poll_interval=float(merged["poll_interval"]),
                timeout=float(merged["timeout"]),
                stable_polls_required=int(merged["stable_polls_required"]),
                done_pattern=str(merged["done_pattern"]),
                in_progress_pattern=str(merged["in_progress_pattern"]),
                prune_empty_dirs=bool(merged["prune_empty_dirs"]),
                prune_whole_tree=bool(merged["prune_whole_tree"]),
                dry_run=bool(merged.get("dry_run", False)),
                log_file=Path(merged["log_file"]) if merged.get("log_file") else None,
                probe_timeout=float(merged["probe_timeout"]),
            )
        except ConfigError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid setting: {exc}") from exc

        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise :exc:`ConfigError` if any setting is out of bounds."""
        _check_bounds("poll interval", self.poll_interval, POLL_INTERVAL_BOUNDS)
        _check_bounds("timeout", self.timeout, TIMEOUT_BOUNDS)
        _check_bounds("stable polls", self.stable_polls_required, STABLE_POLLS_BOUNDS)
        if self.max_files is not None and self.max_files < 1:
            raise ConfigError(f"max files must be at least 1, got {self.max_files}")
        if self.probe_timeout <= 0:
            raise ConfigError(f"probe timeout must be positive, got {self.probe_timeout}")
        # Compile both patterns so a typo fails before any file is touched
        pattern_matcher(self.done_pattern)
        pattern_matcher(self.in_progress_pattern)


def _check_bounds(name: str, value: float, bounds: tuple[float, float]) -> None:
    low, high = bounds
    if not low <= value <= high:
        raise ConfigError(f"{name} must be between {low:g} and {high:g}, got {value:g}")


# ---------------------------------------------------------------------------
# ConfigManager
# ---------------------------------------------------------------------------


class ConfigManager:
    """Loads and persists ``config.json``.

    Writes files atomically (write-to-temp, then rename) to prevent
    corruption on unexpected exit.  A corrupt config triggers a warning and
    a safe reset — it never crashes the application.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Initialise, creating ``~/.syncmove/`` if necessary."""
        self._base = base_dir or Path.home() / ".syncmove"
        self._config_path = self._base / "config.json"

        self._base.mkdir(parents=True, exist_ok=True)
        self._config: dict[str, Any] = self._load_config()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _atomic_write(self, path: Path, data: Any) -> None:
        """Serialise *data* as JSON and write atomically to *path*."""
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise

    def _load_config(self) -> dict[str, Any]:
        """Load ``config.json``, resetting to defaults on corruption."""
        if not self._config_path.exists():
            logger.debug("No config file — creating defaults")
            config = dict(DEFAULT_CONFIG)
            self._atomic_write(self._config_path, config)
            return config

        try:
            raw = self._config_path.read_text(encoding="utf-8")
            loaded = json.loads(raw)
            if not isinstance(loaded, dict):
                raise ValueError("Config root must be a JSON object")
            # Merge with defaults so new keys are always present
            merged = dict(DEFAULT_CONFIG)
            merged.update(loaded)
            return merged
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning(
                "Corrupt config.json (%s) — resetting to defaults", exc
            )
            config = dict(DEFAULT_CONFIG)
            self._atomic_write(self._config_path, config)
            return config

    # ------------------------------------------------------------------
    # Config access
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._config_path

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* if missing."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set *key* to *value* and persist the config file."""
        self._config[key] = value
        self._atomic_write(self._config_path, self._config)
        logger.debug("Config updated: %s = %r", key, value)

    def get_all(self) -> dict[str, Any]:
        """Return a shallow copy of the full config dict."""
        return dict(self._config)
