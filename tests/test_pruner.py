"""Tests for syncmove/pruner.py — DirectoryPruner."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from syncmove.pruner import DirectoryPruner, _subdirectories, is_empty_dir


@pytest.fixture()
def pruner() -> DirectoryPruner:
    return DirectoryPruner()


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    root = tmp_path / "source"
    root.mkdir()
    return root


class TestIsEmptyDir:
    def test_empty(self, tmp_path: Path) -> None:
        assert is_empty_dir(tmp_path) is True

    def test_hidden_file_counts(self, tmp_path: Path) -> None:
        (tmp_path / ".keep").write_bytes(b"")
        assert is_empty_dir(tmp_path) is False

    def test_unicode_names_count(self, tmp_path: Path) -> None:
        """Multi-codepoint names are still entries."""
        (tmp_path / "👩‍👩‍👧 family.jpg").write_bytes(b"x")
        assert is_empty_dir(tmp_path) is False


class TestOrdering:
    def test_deepest_first_by_segment_count(self, root: Path) -> None:
        # "a" sorts before "zzz" lexicographically but is deeper
        (root / "a" / "b" / "c").mkdir(parents=True)
        (root / "zzz").mkdir()
        ordered = _subdirectories(root)
        depths = [len(p.parts) for p in ordered]
        assert depths == sorted(depths, reverse=True)
        assert ordered[0] == root / "a" / "b" / "c"
        assert ordered[-1] in (root / "a", root / "zzz")


class TestPruneScope:
    def test_removes_emptied_parent_chain(self, pruner: DirectoryPruner, root: Path) -> None:
        leaf = root / "2024" / "05" / "trip"
        leaf.mkdir(parents=True)

        removed = pruner.prune(root, leaf)

        assert removed == [leaf, leaf.parent, leaf.parent.parent]
        assert root.exists()
        assert not (root / "2024").exists()

    def test_never_removes_root(self, pruner: DirectoryPruner, root: Path) -> None:
        assert pruner.prune(root, root) == []
        assert root.exists()

    def test_never_touches_outside_root(self, pruner: DirectoryPruner, root: Path) -> None:
        sibling = root.parent / "elsewhere"
        sibling.mkdir()
        assert pruner.prune(root, sibling) == []
        assert sibling.exists()

    def test_symlinked_scope_pointing_outside_is_skipped(
        self, pruner: DirectoryPruner, root: Path
    ) -> None:
        outside = root.parent / "outside"
        (outside / "empty_child").mkdir(parents=True)
        (outside / "keep.txt").write_bytes(b"x")
        link = root / "link"
        link.symlink_to(outside, target_is_directory=True)

        assert pruner.prune(root, link) == []
        assert (outside / "empty_child").is_dir()
        assert link.is_symlink()

    def test_scope_below_symlinked_ancestor_is_skipped(
        self, pruner: DirectoryPruner, root: Path
    ) -> None:
        outside = root.parent / "outside"
        (outside / "album" / "day1").mkdir(parents=True)
        (root / "link").symlink_to(outside, target_is_directory=True)

        assert pruner.prune(root, root / "link" / "album") == []
        assert (outside / "album" / "day1").is_dir()

    def test_nested_symlink_not_followed(self, pruner: DirectoryPruner, root: Path) -> None:
        outside = root.parent / "outside"
        (outside / "empty_child").mkdir(parents=True)
        album = root / "album"
        album.mkdir()
        (album / "link").symlink_to(outside, target_is_directory=True)

        pruner.prune(root, root)

        assert (outside / "empty_child").is_dir()
        assert album.is_dir()

    def test_stops_at_non_empty_ancestor(self, pruner: DirectoryPruner, root: Path) -> None:
        leaf = root / "album" / "day1"
        leaf.mkdir(parents=True)
        (root / "album" / "cover.jpg").write_bytes(b"x")

        removed = pruner.prune(root, leaf)

        assert removed == [leaf]
        assert (root / "album").exists()

    def test_scope_with_remaining_file_is_kept(self, pruner: DirectoryPruner, root: Path) -> None:
        leaf = root / "album"
        leaf.mkdir()
        (leaf / "b.jpg").write_bytes(b"x")

        assert pruner.prune(root, leaf) == []
        assert leaf.exists()

    def test_missing_scope_is_noop(self, pruner: DirectoryPruner, root: Path) -> None:
        assert pruner.prune(root, root / "gone") == []

    def test_empty_subdirectories_of_scope_removed(self, pruner: DirectoryPruner, root: Path) -> None:
        scope = root / "album"
        (scope / "raw" / "2024").mkdir(parents=True)
        (scope / "edits").mkdir()
        (scope / "keep").mkdir()
        (scope / "keep" / "file.txt").write_bytes(b"x")

        removed = pruner.prune(root, scope)

        assert scope / "raw" / "2024" in removed
        assert scope / "raw" in removed
        assert scope / "edits" in removed
        assert (scope / "keep" / "file.txt").exists()
        assert scope.exists()

    def test_unicode_tree(self, pruner: DirectoryPruner, root: Path) -> None:
        full = root / "Ünïcödé" / "日本語"
        empty = root / "Ünïcödé" / "🇯🇵"
        full.mkdir(parents=True)
        empty.mkdir()
        (full / "写真.jpg").write_bytes(b"x")

        pruner.prune(root, root / "Ünïcödé")

        assert full.exists()
        assert not empty.exists()


class TestPruneWholeTree:
    def test_prunes_everything_below_root(self, pruner: DirectoryPruner, root: Path) -> None:
        (root / "a" / "b").mkdir(parents=True)
        (root / "c").mkdir()
        (root / "d").mkdir()
        (root / "d" / "file.txt").write_bytes(b"x")

        removed = pruner.prune(root, root)

        assert set(removed) == {root / "a" / "b", root / "a", root / "c"}
        assert root.exists()
        assert (root / "d" / "file.txt").exists()


class TestPruneRaces:
    def test_rmdir_failure_is_skipped(self, pruner: DirectoryPruner, root: Path) -> None:
        """A directory that refuses deletion is logged and pruning continues."""
        (root / "a").mkdir()
        (root / "b").mkdir()
        real_rmdir = Path.rmdir

        def flaky_rmdir(self: Path) -> None:
            if self.name == "a":
                raise OSError(39, "Directory not empty")
            real_rmdir(self)

        with patch.object(Path, "rmdir", flaky_rmdir):
            removed = pruner.prune(root, root)

        assert removed == [root / "b"]
        assert (root / "a").exists()

    def test_content_added_after_enumeration_is_kept(
        self, pruner: DirectoryPruner, root: Path
    ) -> None:
        """Emptiness is re-checked at delete time, not from the snapshot."""
        (root / "a").mkdir()
        (root / "b").mkdir()
        real_subdirectories = _subdirectories

        def snapshot_then_write(scope: Path) -> list[Path]:
            snapshot = real_subdirectories(scope)
            # a concurrent writer drops a file into "b" after the listing
            (root / "b" / "new.txt").write_bytes(b"x")
            return snapshot

        with patch("syncmove.pruner._subdirectories", snapshot_then_write):
            removed = pruner.prune(root, root)

        assert removed == [root / "a"]
        assert (root / "b" / "new.txt").exists()

