"""File handler module: directory listing, copy and delete primitives.

Provides the filesystem I/O used by the reconciler.  Every function
raises ``OSError`` on failure; the caller decides how to report it.

Read-only destination files are made writable before they are
overwritten or deleted, so a file marked read-only by an earlier run
never blocks a sync.  Symbolic links are not synchronised: listings skip
them and tree removal unlinks them without following.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from syncdir.sync.paths import IgnoreMatcher, join_rel

logger = logging.getLogger(__name__)

# =============================================================================
# Listing
# =============================================================================


def list_directory(
    path: Path, rel_path: str, ignore: IgnoreMatcher
) -> tuple[list[str], list[str]]:
    """List the file and subdirectory names of *path*.

    Entries whose relative path (``rel_path/name``) is ignored are left
    out entirely.

    Returns:
        ``(file_names, dir_names)``, each sorted.  Both are empty when
        *path* does not exist.
    """
    if not path.is_dir():
        return [], []

    files: list[str] = []
    dirs: list[str] = []
    with os.scandir(path) as it:
        for entry in it:
            if ignore.is_ignored(join_rel(rel_path, entry.name)):
                logger.debug("Ignoring %s", join_rel(rel_path, entry.name))
                continue
            if entry.is_symlink():
                logger.debug("Skipping symbolic link %s", entry.path)
                continue
            if entry.is_dir():
                dirs.append(entry.name)
            elif entry.is_file():
                files.append(entry.name)
    return sorted(files), sorted(dirs)


# =============================================================================
# Mutations
# =============================================================================


def clear_readonly(path: Path) -> None:
    """Make *path* writable by its owner if it exists and is not."""
    try:
        mode = os.stat(path, follow_symlinks=False).st_mode
    except FileNotFoundError:
        return
    if not mode & stat.S_IWUSR:
        os.chmod(path, mode | stat.S_IWUSR)


def check_copy_target(dst: Path) -> None:
    """Raise if *dst* is not something ``copy_file`` may overwrite.

    Only a regular file or a missing path is a valid destination.  A
    directory of the same name, or a symbolic link (which would be
    written through), is refused.
    """
    if dst.is_symlink():
        raise FileExistsError(
            errno.EEXIST, "Destination is a symbolic link", str(dst)
        )
    if dst.is_dir():
        raise IsADirectoryError(
            errno.EISDIR, "Destination is a directory", str(dst)
        )


def copy_file(src: Path, dst: Path) -> None:
    """Copy *src* over *dst*, preserving the modification time."""
    check_copy_target(dst)
    clear_readonly(dst)
    shutil.copyfile(src, dst)
    shutil.copystat(src, dst)


def delete_file(path: Path) -> None:
    clear_readonly(path)
    os.unlink(path)


def create_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


@dataclass
class TreeRemoval:
    """Running totals of a recursive directory delete.

    Filled in as the walk proceeds, so the counts of a delete that
    fails halfway are still available to the caller.
    """

    files: int = 0
    dirs: int = 0
    bytes: int = 0


def delete_tree(
    path: Path, removal: TreeRemoval, dry_run: bool = False
) -> None:
    """Recursively delete the directory *path*.

    Files are deleted first, then subdirectories, then *path* itself.
    With *dry_run* the same walk is made and counted but nothing is
    deleted.
    """
    if not dry_run:
        clear_readonly(path)

    subdirs: list[Path] = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(Path(entry.path))
                continue
            size = entry.stat(follow_symlinks=False).st_size
            if not dry_run:
                if entry.is_symlink():
                    os.unlink(entry.path)
                else:
                    delete_file(Path(entry.path))
            removal.files += 1
            removal.bytes += size

    for subdir in subdirs:
        delete_tree(subdir, removal, dry_run)

    if not dry_run:
        os.rmdir(path)
    removal.dirs += 1
