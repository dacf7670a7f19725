"""Directory tree reconciler.

The ``SyncEngine`` walks the two trees of one sync job in lockstep, one
directory level at a time, depth first.  For every name on either side
it combines three signals: the left cache, the right cache and the live
filesystem.  From them it decides whether to copy, create, delete or
leave the entry alone, performs the action (unless in test mode),
reports it, and brings both caches in line with the result.

Two modes:

* **One master** (``left`` or ``right``): the mirror is made identical
  to the master.  Mirror-only entries are deleted.
* **Both masters**: each entry is propagated from the side that changed
  since the last run; deletions recorded in one side's cache are
  propagated to the other.  When the caches cannot tell, the newer file
  wins; equal timestamps with different sizes are left alone and
  reported as a warning.

Every directory level returns its own ``SyncStats``; callers merge
them.  Errors are per entry: a failing file is reported and the walk
continues with its siblings, and a failing directory level ends only
that subtree.  ``StorageError`` is never caught here.

All cache updates of a job happen inside one store transaction, which
is committed at the end of a live run and rolled back in test mode.
"""

from __future__ import annotations

import logging
from pathlib import Path

from syncdir import file_handler
from syncdir.config_schema import MasterMode, SyncJobConfig
from syncdir.errors import StorageError
from syncdir.sync.detector import modified_close
from syncdir.sync.filedb import FileDb
from syncdir.sync.models import Direction, FileOperation, SyncStats
from syncdir.sync.paths import DirState, IgnoreMatcher
from syncdir.sync.reporter import RecordingReportSink, ReportSink
from syncdir.sync.store import MetadataStore

logger = logging.getLogger(__name__)


def _other(side: str) -> str:
    return "right" if side == "left" else "left"


def _direction(target: str) -> Direction:
    return (
        Direction.LEFT_TO_RIGHT if target == "right" else Direction.RIGHT_TO_LEFT
    )


def _fold(names: list[str]) -> dict[str, str]:
    """Map case-folded names to the names as listed."""
    return {name.casefold(): name for name in names}


class SyncEngine:
    """Reconcile the two trees of one sync job.

    Args:
        store: Metadata store; must not be inside a transaction.
        job: The sync job (roots, master mode, ignore patterns).
        sink: Receiver of operations, errors and warnings.
        dry_run: Test mode: walk, compare and report, but change neither
            the filesystem nor the store.
    """

    def __init__(
        self,
        store: MetadataStore,
        job: SyncJobConfig,
        sink: ReportSink | None = None,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.job = job
        self.sink = sink if sink is not None else RecordingReportSink()
        self.dry_run = dry_run

        self.left_root = Path(job.left).expanduser().resolve()
        self.right_root = Path(job.right).expanduser().resolve()
        self.ignore = IgnoreMatcher(job.ignore_patterns)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> SyncStats:
        """Reconcile the whole job and return its counters."""
        master = self.job.master
        logger.debug("Syncing %s (test=%s)", self.job.label, self.dry_run)

        with self.store.transaction(commit=not self.dry_run):
            state = DirState.root(
                FileDb(self.store, self.left_root),
                FileDb(self.store, self.right_root),
                self.ignore,
            )
            if master == MasterMode.BOTH:
                stats = self._both_dir(state)
            elif master == MasterMode.LEFT:
                stats = self._one_dir(state, "left", "right")
            else:
                stats = self._one_dir(state, "right", "left")

        return stats

    # ------------------------------------------------------------------
    # One master
    # ------------------------------------------------------------------

    def _one_dir(
        self,
        state: DirState,
        master: str,
        mirror: str,
        mirror_created: bool = False,
    ) -> SyncStats:
        """Make one level of the mirror identical to the master.

        *mirror_created* is set when the parent level has just created
        this directory on the mirror (or would have, in test mode).
        """
        stats = SyncStats()
        direction = _direction(mirror)
        master_db, mirror_db = state.db(master), state.db(mirror)

        try:
            master_path = state.abs_path(master)
            mirror_path = state.abs_path(mirror)

            if master_path.is_dir():
                stats.side(master).dirs_analyzed += 1
            if mirror_path.is_dir() or mirror_created:
                stats.side(mirror).dirs_analyzed += 1
            else:
                self._create_dir(
                    stats,
                    state.rel_path,
                    mirror_path,
                    direction,
                    f"{mirror} directory does not exist",
                )

            master_db.update_directory(state.rel_path, master_path)
            mirror_db.update_directory(state.rel_path, mirror_path)

            master_files, master_dirs = file_handler.list_directory(
                master_path, state.rel_path, state.ignore
            )
            mirror_files, mirror_dirs = file_handler.list_directory(
                mirror_path, state.rel_path, state.ignore
            )

            # New and changed files.
            mirror_by_key = _fold(mirror_files)
            for name in master_files:
                stats.side(master).files_analyzed += 1
                mirror_name = mirror_by_key.get(name.casefold())
                if mirror_name is not None:
                    stats.side(mirror).files_analyzed += 1
                self._one_file(stats, state, master, name, mirror_name)

            # Files deleted from the master.
            master_keys = {n.casefold() for n in master_files}
            for name in mirror_files:
                if name.casefold() in master_keys:
                    continue
                stats.side(mirror).files_analyzed += 1
                rel = state.rel_name(name)
                try:
                    if master_db.file_exists(rel):
                        reason = "file deleted in master"
                    else:
                        reason = "file does not exist in master"
                    mirror_file = state.abs_name(mirror, name)
                    deleted = self._delete_file(
                        stats, rel, mirror_file, direction, reason
                    )
                    self._forget_file(
                        state, rel, deleted, {mirror: mirror_file}
                    )
                except StorageError:
                    raise
                except Exception as exc:
                    self._error(
                        stats, f"Error when deleting file '{rel}'.", exc
                    )

            # New directories, and recursion into all master directories.
            mirror_dirs_by_key = _fold(mirror_dirs)
            for name in master_dirs:
                mirror_name = mirror_dirs_by_key.get(name.casefold())
                created = False
                if mirror_name is None:
                    created = self._create_dir(
                        stats,
                        state.rel_name(name),
                        state.abs_name(mirror, name),
                        direction,
                        "new directory",
                    )
                    mirror_name = name
                names = {master: name, mirror: mirror_name}
                stats.merge(
                    self._one_dir(
                        state.child(names["left"], names["right"]),
                        master,
                        mirror,
                        mirror_created=created,
                    )
                )

            # Directories deleted from the master.
            master_dir_keys = {n.casefold() for n in master_dirs}
            for name in mirror_dirs:
                if name.casefold() in master_dir_keys:
                    continue
                rel = state.rel_name(name)
                try:
                    if master_db.directory_exists(rel):
                        reason = "directory deleted in master"
                    else:
                        reason = "directory does not exist in master"
                    if self._delete_dir(
                        stats, rel, state.abs_name(mirror, name), direction, reason
                    ):
                        master_db.delete_directory(rel)
                        mirror_db.delete_directory(rel)
                except StorageError:
                    raise
                except Exception as exc:
                    self._error(
                        stats, f"Error when deleting directory '{rel}'.", exc
                    )

        except StorageError:
            raise
        except Exception as exc:
            self._error(
                stats,
                f"Error when processing directory '{state.rel_path}'.",
                exc,
            )

        return stats

    def _one_file(
        self,
        stats: SyncStats,
        state: DirState,
        master: str,
        name: str,
        mirror_name: str | None,
    ) -> None:
        """Bring one master file across if the mirror lacks or differs."""
        mirror = _other(master)
        direction = _direction(mirror)
        rel = state.rel_name(name)
        src = state.abs_name(master, name)
        dst = state.abs_name(mirror, mirror_name or name)

        try:
            if mirror_name is None:
                copied = self._copy_file(
                    stats, rel, src, dst, direction, "does not exist in mirror"
                )
            else:
                src_st = src.stat()
                dst_st = dst.stat()
                changed, why = state.db(master).has_file_changed(
                    rel, src_st.st_mtime, src_st.st_size
                )
                reason = None
                if changed:
                    reason = f"master file: {why}"
                elif src_st.st_size != dst_st.st_size:
                    reason = "size different"
                elif not modified_close(src_st.st_mtime, dst_st.st_mtime):
                    reason = "modified dates different"

                copied = reason is not None and self._copy_file(
                    stats, rel, src, dst, direction, reason
                )

            self._record_file(state, rel, master, {master: src, mirror: dst}, copied)
        except StorageError:
            raise
        except Exception as exc:
            self._error(stats, f"Error when syncing file '{rel}'.", exc)

    # ------------------------------------------------------------------
    # Both masters
    # ------------------------------------------------------------------

    def _both_dir(
        self, state: DirState, created_side: str | None = None
    ) -> SyncStats:
        """Reconcile one level where either side may hold the newer state.

        *created_side* names the side on which the parent level has just
        created this directory (or would have, in test mode).
        """
        stats = SyncStats()
        left_db, right_db = state.left_db, state.right_db

        try:
            for side in ("left", "right"):
                path = state.abs_path(side)
                if path.is_dir() or created_side == side:
                    stats.side(side).dirs_analyzed += 1
                else:
                    self._create_dir(
                        stats,
                        state.rel_path,
                        path,
                        _direction(side),
                        f"{side} directory does not exist",
                    )

            left_path = state.abs_path("left")
            right_path = state.abs_path("right")
            left_db.update_directory(state.rel_path, left_path)
            right_db.update_directory(state.rel_path, right_path)

            listings = {}
            for side, path in (("left", left_path), ("right", right_path)):
                if not path.is_dir() and not self.dry_run:
                    raise FileNotFoundError(
                        f"Directory '{path}' no longer exists."
                    )
                listings[side] = file_handler.list_directory(
                    path, state.rel_path, state.ignore
                )
            left_files, left_dirs = listings["left"]
            right_files, right_dirs = listings["right"]

            # Files on the left, or on both sides.
            right_by_key = _fold(right_files)
            for name in left_files:
                stats.left.files_analyzed += 1
                right_name = right_by_key.get(name.casefold())
                if right_name is None:
                    self._both_one_sided(stats, state, "left", name)
                else:
                    stats.right.files_analyzed += 1
                    self._both_file(stats, state, name, right_name)

            # Files on the right only.
            left_keys = {n.casefold() for n in left_files}
            for name in right_files:
                if name.casefold() in left_keys:
                    continue
                stats.right.files_analyzed += 1
                self._both_one_sided(stats, state, "right", name)

            # Directories on the left, or on both sides.
            right_dirs_by_key = _fold(right_dirs)
            for name in left_dirs:
                right_name = right_dirs_by_key.get(name.casefold())
                if right_name is None:
                    self._both_one_sided_dir(stats, state, "left", name)
                else:
                    stats.merge(self._both_dir(state.child(name, right_name)))

            # Directories on the right only.
            left_dir_keys = {n.casefold() for n in left_dirs}
            for name in right_dirs:
                if name.casefold() in left_dir_keys:
                    continue
                self._both_one_sided_dir(stats, state, "right", name)

        except StorageError:
            raise
        except Exception as exc:
            self._error(
                stats,
                f"Error when processing directory '{state.rel_path}'.",
                exc,
            )

        return stats

    def _both_file(
        self, stats: SyncStats, state: DirState, left_name: str, right_name: str
    ) -> None:
        """Reconcile a file that exists on both sides."""
        rel = state.rel_name(left_name)
        paths = {
            "left": state.abs_name("left", left_name),
            "right": state.abs_name("right", right_name),
        }

        try:
            left_st = paths["left"].stat()
            right_st = paths["right"].stat()
            left_changed, left_why = state.left_db.has_file_changed(
                rel, left_st.st_mtime, left_st.st_size
            )
            right_changed, right_why = state.right_db.has_file_changed(
                rel, right_st.st_mtime, right_st.st_size
            )

            source = None
            reason = ""
            if left_changed and not right_changed:
                source, reason = "left", f"left file: {left_why}"
            elif right_changed and not left_changed:
                source, reason = "right", f"right file: {right_why}"
            elif left_st.st_size != right_st.st_size or not modified_close(
                left_st.st_mtime, right_st.st_mtime
            ):
                # Both changed, or neither is recorded yet: newest wins.
                if left_st.st_mtime > right_st.st_mtime:
                    source, reason = "left", "left file modified date is newer"
                elif left_st.st_mtime < right_st.st_mtime:
                    source, reason = "right", "right file modified date is newer"
                else:
                    self._warning(
                        stats,
                        f"The file '{rel}' has the same modification date "
                        "on either side, but a different size.",
                    )

            copied = False
            if source is not None:
                target = _other(source)
                copied = self._copy_file(
                    stats,
                    rel,
                    paths[source],
                    paths[target],
                    _direction(target),
                    reason,
                )

            self._record_file(state, rel, source or "left", paths, copied)
        except StorageError:
            raise
        except Exception as exc:
            self._error(stats, f"Error when syncing file '{rel}'.", exc)

    def _both_one_sided(
        self, stats: SyncStats, state: DirState, side: str, name: str
    ) -> None:
        """Reconcile a file present on *side* only.

        If the other side's cache remembers the file it was deleted
        there, so it is deleted here too; otherwise it is new and is
        copied across.
        """
        other = _other(side)
        rel = state.rel_name(name)
        paths = {
            side: state.abs_name(side, name),
            other: state.abs_name(other, name),
        }

        try:
            if state.db(other).file_exists(rel):
                deleted = self._delete_file(
                    stats,
                    rel,
                    paths[side],
                    _direction(side),
                    f"file deleted on {other}",
                )
                self._forget_file(state, rel, deleted, paths)
            else:
                copied = self._copy_file(
                    stats,
                    rel,
                    paths[side],
                    paths[other],
                    _direction(other),
                    f"file new on {side}",
                )
                self._record_file(state, rel, side, paths, copied)
        except StorageError:
            raise
        except Exception as exc:
            self._error(stats, f"Error when syncing file '{rel}'.", exc)

    def _both_one_sided_dir(
        self, stats: SyncStats, state: DirState, side: str, name: str
    ) -> None:
        """Reconcile a directory present on *side* only."""
        other = _other(side)
        rel = state.rel_name(name)

        try:
            if state.db(other).directory_exists(rel):
                if self._delete_dir(
                    stats,
                    rel,
                    state.abs_name(side, name),
                    _direction(side),
                    f"directory deleted on {other}",
                ):
                    state.left_db.delete_directory(rel)
                    state.right_db.delete_directory(rel)
            elif self._create_dir(
                stats,
                rel,
                state.abs_name(other, name),
                _direction(other),
                f"directory new on {side}",
            ):
                stats.merge(
                    self._both_dir(state.child(name, name), created_side=other)
                )
        except StorageError:
            raise
        except Exception as exc:
            self._error(stats, f"Error when syncing directory '{rel}'.", exc)

    # ------------------------------------------------------------------
    # Cache bookkeeping
    # ------------------------------------------------------------------

    def _record_file(
        self,
        state: DirState,
        rel: str,
        source: str,
        paths: dict[str, Path],
        copied: bool,
    ) -> None:
        """Record both sides of *rel* after a copy from *source* (or none).

        In test mode nothing was copied, so the target is recorded with
        the source's metadata, as it would be after a live copy.
        """
        target = _other(source)
        state.db(source).update_file(rel, paths[source])
        if copied and self.dry_run:
            st = paths[source].stat()
            state.db(target).record_file(rel, st.st_mtime, st.st_size)
        else:
            state.db(target).update_file(rel, paths[target])

    def _forget_file(
        self,
        state: DirState,
        rel: str,
        deleted: bool,
        paths: dict[str, Path],
    ) -> None:
        """Drop *rel* from both caches after a delete, or re-record what
        is still on disk if the delete failed."""
        for side in ("left", "right"):
            db = state.db(side)
            if deleted or side not in paths:
                db.delete_file(rel)
            else:
                db.update_file(rel, paths[side])

    # ------------------------------------------------------------------
    # Filesystem operations
    # ------------------------------------------------------------------

    def _copy_file(
        self,
        stats: SyncStats,
        rel: str,
        src: Path,
        dst: Path,
        direction: Direction,
        reason: str,
    ) -> bool:
        try:
            file_handler.check_copy_target(dst)
            size = src.stat().st_size
            old_size = dst.stat().st_size if dst.is_file() else 0

            self.sink.operation(
                FileOperation.COPY_FILE, direction, rel, size, reason
            )
            if not self.dry_run:
                file_handler.copy_file(src, dst)
        except Exception as exc:
            self._error(
                stats, f"Error when copying file '{src}' to '{dst}'.", exc
            )
            return False

        target = stats.side(direction.target)
        target.files_copied += 1
        target.bytes_copied += size
        target.bytes_net += size - old_size
        return True

    def _create_dir(
        self,
        stats: SyncStats,
        rel: str,
        path: Path,
        direction: Direction,
        reason: str,
    ) -> bool:
        try:
            self.sink.operation(
                FileOperation.CREATE_DIR, direction, rel, None, reason
            )
            if not self.dry_run:
                file_handler.create_directory(path)
        except Exception as exc:
            self._error(
                stats, f"Error when creating directory '{path}'.", exc
            )
            return False

        stats.side(direction.target).dirs_created += 1
        return True

    def _delete_file(
        self,
        stats: SyncStats,
        rel: str,
        path: Path,
        direction: Direction,
        reason: str,
    ) -> bool:
        try:
            size = path.stat().st_size

            self.sink.operation(
                FileOperation.DELETE_FILE, direction, rel, size, reason
            )
            if not self.dry_run:
                file_handler.delete_file(path)
        except Exception as exc:
            self._error(stats, f"Error when deleting file '{path}'.", exc)
            return False

        target = stats.side(direction.target)
        target.files_deleted += 1
        target.bytes_deleted += size
        target.bytes_net -= size
        return True

    def _delete_dir(
        self,
        stats: SyncStats,
        rel: str,
        path: Path,
        direction: Direction,
        reason: str,
    ) -> bool:
        removal = file_handler.TreeRemoval()
        ok = True
        try:
            file_handler.delete_tree(path, removal, dry_run=self.dry_run)
            self.sink.operation(
                FileOperation.DELETE_DIR, direction, rel, removal.bytes, reason
            )
        except Exception as exc:
            self.sink.operation(
                FileOperation.DELETE_DIR, direction, rel, None, reason
            )
            self._error(
                stats, f"Error when deleting directory '{path}'.", exc
            )
            ok = False

        target = stats.side(direction.target)
        target.files_deleted += removal.files
        target.dirs_deleted += removal.dirs
        target.bytes_deleted += removal.bytes
        target.bytes_net -= removal.bytes
        return ok

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _error(
        self, stats: SyncStats, message: str, exc: BaseException
    ) -> None:
        stats.errors += 1
        self.sink.error(message, exc)

    def _warning(self, stats: SyncStats, message: str) -> None:
        stats.warnings += 1
        self.sink.warning(message)
