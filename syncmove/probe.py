"""Sync-status oracle for destination paths.

The production backend asks the Windows Shell for the "Availability status"
column that OneDrive (and other Cloud Files providers) expose in Explorer.
The query runs out of process through PowerShell and the ``Shell.Application``
COM object, so nothing here needs pywin32.

The column index that holds the status varies per folder view, so it is
discovered once per containing directory and cached on the probe instance.
"""

from __future__ import annotations

import abc
import logging
import subprocess
import sys
from pathlib import Path

from syncmove.errors import ProbeError

logger = logging.getLogger(__name__)

STATUS_COLUMN_NAME = "Availability status"
MAX_COLUMN_SCAN = 400
DEFAULT_STATUS_COLUMN = 303
DEFAULT_PROBE_TIMEOUT = 30.0  # seconds per PowerShell invocation

# Keep the shell out of the console's process group so Ctrl+C reaches only us
if sys.platform == "win32":
    _DETACHED = {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
else:
    _DETACHED = {"start_new_session": True}

_PS_PREAMBLE = (
    "$ErrorActionPreference = 'Stop'; "
    "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8; "
)

# Exit codes used by the PowerShell snippets below
_EXIT_NO_FOLDER = 2
_EXIT_NO_ITEM = 3


def _ps_quote(value: str) -> str:
    """Quote *value* as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class SyncStatusProbe(abc.ABC):
    """Answers "what is the sync state of this path right now?"."""

    @abc.abstractmethod
    def probe(self, path: Path) -> str:
        """Return the raw status string for *path*.

        Raises :exc:`ProbeError` if the containing folder or the item cannot
        be resolved.
        """


# ---------------------------------------------------------------------------
# Windows Shell backend
# ---------------------------------------------------------------------------


class ShellSyncStatusProbe(SyncStatusProbe):
    """Reads the availability column via ``Shell.Application`` in PowerShell."""

    def __init__(
        self,
        executable: str = "powershell.exe",
        column_name: str = STATUS_COLUMN_NAME,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self._executable = executable
        self._column_name = column_name
        self._timeout = timeout
        # parent directory -> status column index; filled lazily, never evicted
        self._column_cache: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def probe(self, path: Path) -> str:
        """Return the availability status string for *path*."""
        folder = str(path.parent)
        column = self.status_column(folder)
        script = (
            f"$folder = (New-Object -ComObject Shell.Application).Namespace({_ps_quote(folder)}); "
            f"if ($null -eq $folder) {{ exit {_EXIT_NO_FOLDER} }}; "
            f"$item = $folder.ParseName({_ps_quote(path.name)}); "
            f"if ($null -eq $item) {{ exit {_EXIT_NO_ITEM} }}; "
            f"Write-Output $folder.GetDetailsOf($item, {column})"
        )
        return self._run(script).strip()

    def status_column(self, folder: str) -> int:
        """Return the cached status column for *folder*, discovering it if needed."""
        cached = self._column_cache.get(folder)
        if cached is not None:
            return cached

        column = self._discover_column(folder)
        self._column_cache[folder] = column
        return column

    @property
    def cached_folders(self) -> int:
        """Number of directories whose status column has been discovered."""
        return len(self._column_cache)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _discover_column(self, folder: str) -> int:
        """Scan the folder's detail headers for the availability column."""
        script = (
            f"$folder = (New-Object -ComObject Shell.Application).Namespace({_ps_quote(folder)}); "
            f"if ($null -eq $folder) {{ exit {_EXIT_NO_FOLDER} }}; "
            f"for ($i = 0; $i -lt {MAX_COLUMN_SCAN}; $i++) {{ "
            f"if ($folder.GetDetailsOf($null, $i) -eq {_ps_quote(self._column_name)}) "
            f"{{ Write-Output $i; exit 0 }} }}; "
            "Write-Output -1"
        )
        output = self._run(script).strip()
        try:
            column = int(output.splitlines()[-1])
        except (IndexError, ValueError):
            column = -1

        if column < 0:
            logger.debug(
                "No %r column in %s — falling back to index %d",
                self._column_name,
                folder,
                DEFAULT_STATUS_COLUMN,
            )
            return DEFAULT_STATUS_COLUMN

        logger.debug("Status column for %s is %d", folder, column)
        return column

    def _run(self, script: str) -> str:
        """Run *script* in PowerShell and return its stdout."""
        cmd = [
            self._executable,
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            _PS_PREAMBLE + script,
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self._timeout,
                **_DETACHED,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProbeError(f"Status query timed out after {self._timeout}s") from exc
        except OSError as exc:
            raise ProbeError(f"Could not start {self._executable}: {exc}") from exc

        if result.returncode == _EXIT_NO_FOLDER:
            raise ProbeError("Containing folder could not be resolved")
        if result.returncode == _EXIT_NO_ITEM:
            raise ProbeError("Item not found in its folder")
        if result.returncode != 0:
            raise ProbeError(
                result.stderr.strip() or f"{self._executable} exited with code {result.returncode}"
            )
        return result.stdout
