"""Classification of raw sync-status strings.

The cloud agent reports a free-form, localisable string per path.  It is
reduced here to a :class:`SyncState`; only ``DONE`` advances the stability
counter, every other state resets it.
"""

from __future__ import annotations

import re
from enum import Enum, auto
from typing import Callable

from syncmove.errors import ConfigError

StatusMatcher = Callable[[str], bool]

DEFAULT_DONE_PATTERN = r"(always )?available on this device"
DEFAULT_IN_PROGRESS_PATTERN = r"(sync )?(pending|syncing|uploading|downloading)(\W.*)?"


class SyncState(Enum):
    """Classification of a single status observation."""

    BLANK = auto()
    IN_PROGRESS = auto()
    DONE = auto()
    OTHER = auto()  # non-blank, matches neither pattern (e.g. an error string)


def pattern_matcher(pattern: str) -> StatusMatcher:
    """Build a predicate that full-matches *pattern* against a trimmed status.

    Matching is case-insensitive.  Raises :exc:`ConfigError` if *pattern* is
    not a valid regular expression.
    """
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise ConfigError(f"Invalid status pattern {pattern!r}: {exc}") from exc

    def _matches(status: str) -> bool:
        return compiled.fullmatch(status.strip()) is not None

    return _matches


def classify(
    raw_status: str | None,
    done_matcher: StatusMatcher,
    in_progress_matcher: StatusMatcher,
) -> SyncState:
    """Map *raw_status* to a :class:`SyncState`.

    ``None`` and whitespace-only strings are BLANK.  Done is tested before
    in-progress so an overly broad in-progress pattern can never hide a
    completed sync.
    """
    if raw_status is None or not raw_status.strip():
        return SyncState.BLANK
    if done_matcher(raw_status):
        return SyncState.DONE
    if in_progress_matcher(raw_status):
        return SyncState.IN_PROGRESS
    return SyncState.OTHER
