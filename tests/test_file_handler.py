"""Tests for file_handler module: listing, copy, delete and tree removal."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import T0, write_file

from syncdir.file_handler import (
    TreeRemoval,
    clear_readonly,
    copy_file,
    create_directory,
    delete_file,
    delete_tree,
    list_directory,
)
from syncdir.sync.paths import IgnoreMatcher

# =============================================================================
# list_directory
# =============================================================================


class TestListDirectory:
    """Tests for list_directory(path, rel_path, ignore)."""

    def test_files_and_dirs_sorted(self, tmp_path):
        write_file(tmp_path, "b.txt")
        write_file(tmp_path, "a.txt")
        (tmp_path / "zdir").mkdir()
        (tmp_path / "adir").mkdir()

        files, dirs = list_directory(tmp_path, "", IgnoreMatcher())
        assert files == ["a.txt", "b.txt"]
        assert dirs == ["adir", "zdir"]

    def test_missing_directory_is_empty(self, tmp_path):
        assert list_directory(tmp_path / "nope", "", IgnoreMatcher()) == ([], [])

    def test_ignore_uses_relative_path(self, tmp_path):
        sub = tmp_path / "sub"
        write_file(sub, "keep.txt")
        write_file(sub, "skip.tmp")
        (sub / "cache").mkdir()

        ignore = IgnoreMatcher([r"\.tmp$", "^sub/cache$"])
        files, dirs = list_directory(sub, "sub", ignore)
        assert files == ["keep.txt"]
        assert dirs == []

    def test_anchored_pattern_only_matches_at_root(self, tmp_path):
        (tmp_path / "cache").mkdir()
        files, dirs = list_directory(tmp_path, "nested", IgnoreMatcher(["^cache$"]))
        assert dirs == ["cache"]

    def test_symlinks_skipped(self, tmp_path):
        real = write_file(tmp_path, "real.txt")
        (tmp_path / "link.txt").symlink_to(real)
        (tmp_path / "dirlink").symlink_to(tmp_path, target_is_directory=True)

        files, dirs = list_directory(tmp_path, "", IgnoreMatcher())
        assert files == ["real.txt"]
        assert dirs == []


# =============================================================================
# Copy / delete / create
# =============================================================================


class TestCopyFile:
    """Tests for copy_file(src, dst)."""

    def test_copies_content_and_mtime(self, tmp_path):
        src = write_file(tmp_path, "src.txt", "payload", mtime=T0)
        dst = tmp_path / "dst.txt"

        copy_file(src, dst)
        assert dst.read_text() == "payload"
        assert os.stat(dst).st_mtime == T0

    def test_overwrites_readonly_destination(self, tmp_path):
        src = write_file(tmp_path, "src.txt", "new")
        dst = write_file(tmp_path, "dst.txt", "old")
        os.chmod(dst, stat.S_IRUSR)

        copy_file(src, dst)
        assert dst.read_text() == "new"

    def test_missing_source_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            copy_file(tmp_path / "missing", tmp_path / "dst")

    def test_refuses_directory_destination(self, tmp_path):
        src = write_file(tmp_path, "foo.txt", "payload")
        dst = tmp_path / "dir"
        dst.mkdir()

        with pytest.raises(IsADirectoryError):
            copy_file(src, dst)
        assert list(dst.iterdir()) == []

    def test_refuses_symlink_destination(self, tmp_path):
        src = write_file(tmp_path, "src.txt", "new")
        target = write_file(tmp_path, "elsewhere.txt", "keep")
        dst = tmp_path / "link.txt"
        dst.symlink_to(target)

        with pytest.raises(FileExistsError):
            copy_file(src, dst)
        assert target.read_text() == "keep"
        assert dst.is_symlink()


class TestDeleteAndCreate:
    def test_delete_file(self, tmp_path):
        f = write_file(tmp_path, "f.txt")
        delete_file(f)
        assert not f.exists()

    def test_delete_readonly_file(self, tmp_path):
        f = write_file(tmp_path, "ro.txt")
        os.chmod(f, stat.S_IRUSR)
        delete_file(f)
        assert not f.exists()

    def test_clear_readonly_missing_is_noop(self, tmp_path):
        clear_readonly(tmp_path / "missing")

    def test_create_directory_with_parents(self, tmp_path):
        target = tmp_path / "a" / "b" / "c"
        create_directory(target)
        assert target.is_dir()
        create_directory(target)


# =============================================================================
# delete_tree
# =============================================================================


class TestDeleteTree:
    """Tests for delete_tree(path, removal, dry_run)."""

    def _build(self, root: Path) -> Path:
        top = root / "top"
        write_file(top, "a.txt", "12345")
        write_file(top, "sub/b.txt", "123")
        write_file(top, "sub/deeper/c.txt", "1")
        (top / "empty").mkdir()
        return top

    def test_counts_and_removes(self, tmp_path):
        top = self._build(tmp_path)
        removal = TreeRemoval()

        delete_tree(top, removal)
        assert not top.exists()
        assert removal == TreeRemoval(files=3, dirs=4, bytes=9)

    def test_dry_run_counts_without_removing(self, tmp_path):
        top = self._build(tmp_path)
        removal = TreeRemoval()

        delete_tree(top, removal, dry_run=True)
        assert (top / "sub" / "deeper" / "c.txt").exists()
        assert removal == TreeRemoval(files=3, dirs=4, bytes=9)

    def test_readonly_file_inside_tree(self, tmp_path):
        top = self._build(tmp_path)
        os.chmod(top / "a.txt", stat.S_IRUSR)

        delete_tree(top, TreeRemoval())
        assert not top.exists()

    def test_symlink_unlinked_not_followed(self, tmp_path):
        outside = write_file(tmp_path, "outside.txt", "keep me")
        top = tmp_path / "top"
        top.mkdir()
        (top / "link").symlink_to(outside)

        delete_tree(top, TreeRemoval())
        assert not top.exists()
        assert outside.read_text() == "keep me"

    def test_partial_counts_survive_failure(self, tmp_path):
        top = self._build(tmp_path)
        removal = TreeRemoval()

        with patch(
            "syncdir.file_handler.os.rmdir", side_effect=OSError("busy")
        ):
            with pytest.raises(OSError, match="busy"):
                delete_tree(top, removal)
        assert removal.files >= 1
        assert removal.dirs == 0
