"""Tests for the reconciler in both-master mode.

Covers:
- New files and directories on either side
- Changes detected through each side's cache
- Deletions propagated through the cache
- Fallback when the caches cannot decide: newer wins, equal-date
  conflict warning, silent no-op inside the tolerance window
- Test mode and idempotence
"""

from __future__ import annotations

from pathlib import Path

from conftest import T0, tree, write_file

from syncdir import file_handler
from syncdir.sync.models import EventKind


def ops(sink) -> list[tuple[str, str, str, str]]:
    return [
        (e.action.value, e.direction.value, e.rel_path, e.reason)
        for e in sink.events
        if e.kind == EventKind.OPERATION
    ]


def records(store, root: Path) -> dict[str, tuple[float, int]]:
    bp = store.get_or_create_base_path_id(str(root.resolve()))
    return {
        r.rel_path: (r.modified, r.size)
        for r in store.all_records(bp)
        if not r.is_dir
    }


# ---------------------------------------------------------------------------
# New entries
# ---------------------------------------------------------------------------


class TestNewEntries:
    def test_new_files_on_both_sides(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "from left")
        write_file(right, "b.txt", "from right")

        stats, sink = sync(master="both")

        assert tree(left) == tree(right)
        assert ops(sink) == [
            ("Copy File", "-->", "a.txt", "file new on left"),
            ("Copy File", "<--", "b.txt", "file new on right"),
        ]
        assert stats.right.files_copied == 1
        assert stats.left.files_copied == 1

    def test_new_directories_on_both_sides(self, roots, sync):
        left, right = roots
        write_file(left, "ldir/x.txt", "x")
        write_file(right, "rdir/sub/y.txt", "yy")

        stats, sink = sync(master="both")

        assert tree(left) == tree(right)
        assert ops(sink) == [
            ("Create Dir", "-->", "ldir", "directory new on left"),
            ("Copy File", "-->", "ldir/x.txt", "file new on left"),
            ("Create Dir", "<--", "rdir", "directory new on right"),
            ("Create Dir", "<--", "rdir/sub", "directory new on right"),
            ("Copy File", "<--", "rdir/sub/y.txt", "file new on right"),
        ]
        assert stats.right.dirs_created == 1
        assert stats.left.dirs_created == 2

    def test_second_run_is_noop(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "one")
        write_file(right, "dir/b.txt", "two")
        sync(master="both")

        _, sink = sync(master="both")
        assert sink.events == []


# ---------------------------------------------------------------------------
# Changes
# ---------------------------------------------------------------------------


class TestChanges:
    def test_change_on_right_propagates_left(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "v1")
        sync(master="both")

        write_file(right, "a.txt", "v2 longer", mtime=T0 - 3600)
        _, sink = sync(master="both")

        # The cache decides, even though the right file is older.
        assert ops(sink) == [
            ("Copy File", "<--", "a.txt", "right file: size changed in db")
        ]
        assert (left / "a.txt").read_text() == "v2 longer"

    def test_change_on_left_propagates_right(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "same")
        sync(master="both")

        write_file(left, "a.txt", "same", mtime=T0 + 3600)
        _, sink = sync(master="both")

        assert ops(sink) == [
            ("Copy File", "-->", "a.txt", "left file: modified date changed in db")
        ]

    def test_both_changed_newer_wins(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "base")
        sync(master="both")

        write_file(left, "a.txt", "left!", mtime=T0 + 600)
        write_file(right, "a.txt", "right!!", mtime=T0 + 1200)
        _, sink = sync(master="both")

        assert ops(sink) == [
            ("Copy File", "<--", "a.txt", "right file modified date is newer")
        ]
        assert (left / "a.txt").read_text() == "right!!"


# ---------------------------------------------------------------------------
# Deletions
# ---------------------------------------------------------------------------


class TestDeletions:
    def test_file_deleted_on_left(self, store, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "alpha")
        sync(master="both")

        (left / "a.txt").unlink()
        stats, sink = sync(master="both")

        assert ops(sink) == [
            ("Delete File", "-->", "a.txt", "file deleted on left")
        ]
        assert not (right / "a.txt").exists()
        assert stats.right.files_deleted == 1
        assert records(store, left) == {}
        assert records(store, right) == {}

    def test_file_deleted_on_right(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "alpha")
        sync(master="both")

        (right / "a.txt").unlink()
        _, sink = sync(master="both")

        assert ops(sink) == [
            ("Delete File", "<--", "a.txt", "file deleted on right")
        ]
        assert not (left / "a.txt").exists()

    def test_directory_deleted_on_left(self, store, roots, sync):
        left, right = roots
        write_file(left, "sub/a.txt", "abc")
        write_file(left, "sub/deep/b.txt", "de")
        sync(master="both")

        file_handler.delete_tree(left / "sub", file_handler.TreeRemoval())
        stats, sink = sync(master="both")

        assert ops(sink) == [
            ("Delete Dir", "-->", "sub", "directory deleted on left")
        ]
        assert not (right / "sub").exists()
        assert stats.right.dirs_deleted == 2
        assert stats.right.files_deleted == 2
        assert stats.right.bytes_deleted == 5
        assert records(store, right) == {}

    def test_directory_deleted_on_right(self, roots, sync):
        left, right = roots
        write_file(right, "sub/a.txt")
        sync(master="both")

        file_handler.delete_tree(right / "sub", file_handler.TreeRemoval())
        _, sink = sync(master="both")

        assert ops(sink) == [
            ("Delete Dir", "<--", "sub", "directory deleted on right")
        ]
        assert not (left / "sub").exists()


# ---------------------------------------------------------------------------
# Fallback comparison
# ---------------------------------------------------------------------------


class TestUnrecordedConflicts:
    """Neither cache knows the file: fall back to the live comparison."""

    def test_equal_dates_different_sizes_warns(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "x" * 10, mtime=T0)
        write_file(right, "a.txt", "y" * 20, mtime=T0)

        stats, sink = sync(master="both")

        assert ops(sink) == []
        warnings = [e for e in sink.events if e.kind == EventKind.WARNING]
        assert len(warnings) == 1
        assert warnings[0].message == (
            "The file 'a.txt' has the same modification date on either "
            "side, but a different size."
        )
        assert stats.warnings == 1
        assert (left / "a.txt").read_text() == "x" * 10
        assert (right / "a.txt").read_text() == "y" * 20

    def test_newer_wins(self, store, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "x" * 10, mtime=T0 + 60)
        write_file(right, "a.txt", "y" * 20, mtime=T0)

        stats, sink = sync(master="both")

        assert ops(sink) == [
            ("Copy File", "-->", "a.txt", "left file modified date is newer")
        ]
        assert (right / "a.txt").read_text() == "x" * 10
        assert stats.right.bytes_net == -10
        assert records(store, left) == {"a.txt": (T0 + 60, 10)}
        assert records(store, right) == {"a.txt": (T0 + 60, 10)}

        _, again = sync(master="both")
        assert again.events == []

    def test_same_size_within_window_is_noop(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "same", mtime=T0 + 45)
        write_file(right, "a.txt", "same", mtime=T0)

        stats, sink = sync(master="both")

        assert sink.events == []
        assert stats.warnings == 0

    def test_same_size_outside_window_newer_wins(self, roots, sync):
        left, right = roots
        write_file(left, "a.txt", "aaaa", mtime=T0)
        write_file(right, "a.txt", "bbbb", mtime=T0 + 120)

        _, sink = sync(master="both")

        assert ops(sink) == [
            ("Copy File", "<--", "a.txt", "right file modified date is newer")
        ]
        assert (left / "a.txt").read_text() == "bbbb"


# ---------------------------------------------------------------------------
# Test mode
# ---------------------------------------------------------------------------


class TestDryRun:
    def _populate(self, left: Path, right: Path) -> None:
        write_file(left, "a.txt", "left")
        write_file(left, "ldir/deep/x.txt", "x")
        write_file(right, "b.txt", "right")
        write_file(right, "rdir/y.txt", "yy")
        write_file(left, "both.txt", "x" * 10, mtime=T0)
        write_file(right, "both.txt", "y" * 20, mtime=T0)

    def test_changes_nothing(self, store, roots, sync):
        left, right = roots
        self._populate(left, right)
        before = (tree(left), tree(right))

        sync(master="both", dry_run=True)

        assert (tree(left), tree(right)) == before
        assert store.all_records() == []

    def test_report_matches_live_run(self, roots, sync):
        left, right = roots
        self._populate(left, right)

        dry_stats, dry_sink = sync(master="both", dry_run=True)
        live_stats, live_sink = sync(master="both")

        assert dry_sink.events == live_sink.events
        assert dry_stats == live_stats


# ---------------------------------------------------------------------------
# Entries that are not regular files
# ---------------------------------------------------------------------------


class TestObstacles:
    """A copy never lands inside a directory or behind a symbolic link."""

    def test_file_against_directory_of_same_name(self, roots, sync):
        left, right = roots
        write_file(left, "foo", "left-file")
        write_file(right, "foo/inner.txt", "r")
        before = (tree(left), tree(right))

        stats, sink = sync("both")

        assert (tree(left), tree(right)) == before
        assert "foo/foo" not in tree(right)
        messages = [e.message for e in sink.events if e.kind == EventKind.ERROR]
        assert any(m.startswith("Error when copying file") for m in messages)
        assert ("Copy File", "-->", "foo", "file new on left") not in ops(sink)
        assert stats.right.files_copied == 0

    def test_symlink_on_other_side_not_written_through(self, tmp_path, roots, sync):
        left, right = roots
        outside = write_file(tmp_path, "outside.txt", "precious")
        write_file(left, "f", "left-content")
        (right / "f").symlink_to(outside)

        stats, sink = sync("both")

        assert outside.read_text() == "precious"
        assert (right / "f").is_symlink()
        assert stats.errors == 1
        assert ops(sink) == []
