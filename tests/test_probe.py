"""Tests for syncmove/probe.py — ShellSyncStatusProbe."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from syncmove.errors import ProbeError
from syncmove.probe import (
    DEFAULT_STATUS_COLUMN,
    MAX_COLUMN_SCAN,
    ShellSyncStatusProbe,
    _ps_quote,
)

PHOTO = Path("/cloud/album/photo.jpg")


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> MagicMock:
    return MagicMock(stdout=stdout, stderr=stderr, returncode=returncode)


@pytest.fixture()
def mock_run():
    with patch("syncmove.probe.subprocess.run") as run:
        yield run


class TestQuoting:
    def test_single_quotes_doubled(self) -> None:
        assert _ps_quote("it's") == "'it''s'"

    def test_unicode_passes_through(self) -> None:
        assert _ps_quote("写真 👩‍👩‍👧") == "'写真 👩‍👩‍👧'"


class TestColumnDiscovery:
    def test_discovered_column_used_for_status(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [_completed("12\n"), _completed("Always available on this device\r\n")]
        probe = ShellSyncStatusProbe()

        status = probe.probe(PHOTO)

        assert status == "Always available on this device"
        discovery_script = mock_run.call_args_list[0].args[0][-1]
        assert f"$i -lt {MAX_COLUMN_SCAN}" in discovery_script
        assert "'Availability status'" in discovery_script
        status_script = mock_run.call_args_list[1].args[0][-1]
        assert "GetDetailsOf($item, 12)" in status_script
        assert "ParseName('photo.jpg')" in status_script

    def test_column_cached_per_directory(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [
            _completed("7"),
            _completed("Syncing"),
            _completed("Syncing"),
            _completed("9"),
            _completed("Syncing"),
        ]
        probe = ShellSyncStatusProbe()

        probe.probe(PHOTO)
        probe.probe(PHOTO.with_name("other.jpg"))
        probe.probe(Path("/cloud/elsewhere/x.jpg"))

        assert mock_run.call_count == 5
        assert probe.cached_folders == 2
        assert probe.status_column(str(PHOTO.parent)) == 7

    def test_missing_column_falls_back_to_default(self, mock_run: MagicMock) -> None:
        mock_run.return_value = _completed("-1")
        probe = ShellSyncStatusProbe()
        assert probe.status_column("/cloud/album") == DEFAULT_STATUS_COLUMN

    def test_garbage_discovery_output_falls_back(self, mock_run: MagicMock) -> None:
        mock_run.return_value = _completed("")
        probe = ShellSyncStatusProbe()
        assert probe.status_column("/cloud/album") == DEFAULT_STATUS_COLUMN

    def test_failed_discovery_is_not_cached(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [_completed(returncode=2), _completed("4")]
        probe = ShellSyncStatusProbe()

        with pytest.raises(ProbeError):
            probe.status_column("/cloud/album")
        assert probe.status_column("/cloud/album") == 4


class TestErrors:
    def test_missing_folder(self, mock_run: MagicMock) -> None:
        mock_run.return_value = _completed(returncode=2)
        with pytest.raises(ProbeError, match="folder"):
            ShellSyncStatusProbe().probe(PHOTO)

    def test_missing_item(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [_completed("5"), _completed(returncode=3)]
        with pytest.raises(ProbeError, match="Item not found"):
            ShellSyncStatusProbe().probe(PHOTO)

    def test_other_exit_code_uses_stderr(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [_completed("5"), _completed(returncode=1, stderr="COM failure")]
        with pytest.raises(ProbeError, match="COM failure"):
            ShellSyncStatusProbe().probe(PHOTO)

    def test_timeout(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="powershell.exe", timeout=30)
        with pytest.raises(ProbeError, match="timed out"):
            ShellSyncStatusProbe().probe(PHOTO)

    def test_executable_missing(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = FileNotFoundError(2, "No such file")
        with pytest.raises(ProbeError, match="Could not start"):
            ShellSyncStatusProbe(executable="pwsh").probe(PHOTO)

    def test_blank_status_is_returned_not_raised(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [_completed("5"), _completed("   \r\n")]
        assert ShellSyncStatusProbe().probe(PHOTO) == ""


class TestProcessIsolation:
    def test_shell_runs_outside_console_process_group(self, mock_run: MagicMock) -> None:
        """Ctrl+C in the console must not kill an in-flight status query."""
        mock_run.side_effect = [_completed("5"), _completed("Syncing")]
        ShellSyncStatusProbe().probe(PHOTO)

        for call in mock_run.call_args_list:
            if sys.platform == "win32":
                assert call.kwargs["creationflags"] & subprocess.CREATE_NEW_PROCESS_GROUP
            else:
                assert call.kwargs["start_new_session"] is True
