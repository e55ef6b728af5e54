"""Logging setup for SyncMove.

The log file is meant to be grepped after long migrations, so every record is
a single ``[<timestamp>][<LEVEL>] <message>`` line.  Poll ticks are written at
a dedicated ``POLL`` level that sits between DEBUG and INFO.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

POLL = 15
logging.addLevelName(POLL, "POLL")

_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_CONSOLE_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
_CONSOLE_DATE_FORMAT = "%H:%M:%S"

# Level names written to the log file; anything above ERROR is folded into it
_LEVEL_LABELS = {
    POLL: "POLL",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


class RecordFormatter(logging.Formatter):
    """Formats records as ``[2026-01-31 12:00:00][WARN] message``."""

    def __init__(self) -> None:
        super().__init__(datefmt=_FILE_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        label = _LEVEL_LABELS.get(record.levelno, record.levelname)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message} ({record.exc_info[1]})"
        # One line per event
        message = message.replace("\r", " ").replace("\n", " ")
        return f"[{self.formatTime(record, self.datefmt)}][{label}] {message}"


def default_log_path(log_dir: Path, now: datetime | None = None) -> Path:
    """Return ``<log_dir>/syncmove_<YYYYmmdd_HHMMSS>.log``."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return log_dir / f"syncmove_{stamp}.log"


def configure_logging(log_file: Path | None, verbose: bool = False) -> None:
    """Route ``syncmove`` loggers to stderr and, optionally, *log_file*.

    Safe to call more than once; previously installed handlers are replaced.
    """
    package_logger = logging.getLogger("syncmove")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, _CONSOLE_DATE_FORMAT))
    package_logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(POLL)
        file_handler.setFormatter(RecordFormatter())
        package_logger.addHandler(file_handler)
