"""One side's view of the metadata store.

``FileDb`` binds a ``MetadataStore`` to a side's base path id so the
reconciler can talk in relative paths only.  The ``update_*`` methods
record whatever is on disk right now, or drop the record when the entry
is gone.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from syncdir.sync import detector
from syncdir.sync.store import MetadataStore

logger = logging.getLogger(__name__)


class FileDb:
    """Metadata accessor for one base path.

    Args:
        store: The shared metadata store.
        base_path: Absolute root of this side.  Registered in the store
            on construction, so build it inside the job's transaction.
    """

    def __init__(self, store: MetadataStore, base_path: Path) -> None:
        self.store = store
        self.base_path = base_path
        self.base_path_id = store.get_or_create_base_path_id(str(base_path))

    def abs_path(self, rel_path: str) -> Path:
        return self.base_path / rel_path if rel_path else self.base_path

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_file_changed(
        self, rel_path: str, live_modified: float, live_size: int
    ) -> tuple[bool, str]:
        """Compare live metadata with the cached record for *rel_path*."""
        record = self.store.get_record(self.base_path_id, rel_path)
        return detector.has_changed(record, live_modified, live_size)

    def file_exists(self, rel_path: str) -> bool:
        """True if the cache remembers *rel_path* as a file."""
        record = self.store.get_record(self.base_path_id, rel_path)
        return record is not None and not record.is_dir

    def directory_exists(self, rel_path: str) -> bool:
        """True if the cache remembers *rel_path* as a directory, or
        remembers anything beneath it."""
        record = self.store.get_record(self.base_path_id, rel_path)
        if record is not None and record.is_dir:
            return True
        return self.store.any_record_under(self.base_path_id, rel_path)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record_file(self, rel_path: str, modified: float, size: int) -> None:
        self.store.upsert_record(
            self.base_path_id, rel_path, modified, size, False
        )

    def update_file(self, rel_path: str, path: Path | None = None) -> None:
        """Record the live state of the file at *rel_path*.

        *path* overrides the absolute location when the name on disk is
        spelt differently from *rel_path*.  Anything other than a regular
        file (a directory or a symbolic link of the same name) is not
        recorded, and a stale file record is dropped.
        """
        try:
            st = os.stat(path or self.abs_path(rel_path), follow_symlinks=False)
        except FileNotFoundError:
            self.store.delete_record(self.base_path_id, rel_path)
            return
        if not stat.S_ISREG(st.st_mode):
            if self.file_exists(rel_path):
                self.store.delete_record(self.base_path_id, rel_path)
            return
        self.record_file(rel_path, st.st_mtime, st.st_size)

    def update_directory(self, rel_path: str, path: Path | None = None) -> None:
        """Record the live state of the directory at *rel_path*."""
        path = path or self.abs_path(rel_path)
        if not path.is_dir():
            self.store.delete_record(self.base_path_id, rel_path)
            return
        self.store.upsert_record(
            self.base_path_id, rel_path, path.stat().st_mtime, 0, True
        )

    def delete_file(self, rel_path: str) -> None:
        self.store.delete_record(self.base_path_id, rel_path)

    def delete_directory(self, rel_path: str) -> None:
        """Forget *rel_path* and everything recorded beneath it."""
        self.store.delete_records_under_dir(self.base_path_id, rel_path)
