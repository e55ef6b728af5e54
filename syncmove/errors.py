"""Exception types raised by SyncMove."""

from __future__ import annotations


class SyncMoveError(Exception):
    """Base class for all SyncMove errors."""


class ProbeError(SyncMoveError):
    """Raised when the sync-status oracle cannot answer for a path."""


class CopyError(SyncMoveError):
    """Raised when a source file could not be copied to its destination."""


class ConfigError(SyncMoveError, ValueError):
    """Raised when a setting is missing, malformed or out of bounds."""
