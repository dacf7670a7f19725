"""SQLite metadata store.

Remembers, per base path, the modification time, size and kind of every
entry seen during the last successful sync.  The reconciler uses it to
tell "changed since last sync" apart from "different right now", and to
tell a deletion on one side apart from a new file on the other.

Schema::

    base_path (id, path COLLATE NOCASE UNIQUE)
    rel_file  (base_path_id, rel_path COLLATE NOCASE, modified REAL,
               file_size INTEGER, dir INTEGER,
               UNIQUE (base_path_id, rel_path))

Relative paths are stored ``/``-separated; the root of a side is the
empty string.

The connection runs in autocommit mode and transactions are explicit
(``transaction()``), so one sync job's updates are committed together,
or rolled back on failure and in dry-run mode.  Reads inside a
transaction see its pending writes.

Every ``sqlite3.Error`` is re-raised as ``StorageError``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from syncdir.errors import StorageError
from syncdir.sync.models import FileRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS base_path (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  path TEXT NOT NULL COLLATE NOCASE
);
CREATE UNIQUE INDEX IF NOT EXISTS base_path_ix_path ON base_path (path);

CREATE TABLE IF NOT EXISTS rel_file (
  base_path_id INTEGER NOT NULL REFERENCES base_path (id),
  rel_path TEXT NOT NULL COLLATE NOCASE,
  modified REAL NOT NULL,
  file_size INTEGER NOT NULL,
  dir INTEGER NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS rel_file_ix_rel_path
  ON rel_file (base_path_id, rel_path);
"""


def _escape_like(value: str) -> str:
    return (
        value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )


def _to_record(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        base_path_id=row["base_path_id"],
        rel_path=row["rel_path"],
        modified=row["modified"],
        size=row["file_size"],
        is_dir=bool(row["dir"]),
    )


class MetadataStore:
    """Persistent (base path, relative path) -> FileRecord mapping.

    Args:
        db_path: SQLite database file, created (with its parent
            directory) if missing.  ``":memory:"`` gives a private
            in-memory store.
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = str(db_path)
        self._in_transaction = False
        try:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._db_path, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(
                f"Cannot open metadata database {self._db_path}: {exc}"
            ) from exc
        logger.debug("Opened metadata database %s", self._db_path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as exc:
            logger.debug("Error closing database: %s", exc)

    def __enter__(self) -> MetadataStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def transaction(self, commit: bool = True) -> Iterator[None]:
        """Wrap a block in one transaction.

        The transaction is committed when the block completes and
        *commit* is true, rolled back otherwise (including on any
        exception, which is then re-raised).
        """
        if self._in_transaction:
            raise StorageError("A transaction is already active")

        self._execute("BEGIN")
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._finish("ROLLBACK")
            raise
        self._finish("COMMIT" if commit else "ROLLBACK")

    def _finish(self, statement: str) -> None:
        self._in_transaction = False
        self._execute(statement)
        logger.debug("Transaction finished with %s", statement)

    # ------------------------------------------------------------------
    # Base paths
    # ------------------------------------------------------------------

    def get_or_create_base_path_id(self, path: str) -> int:
        """Return the stable id for *path*, inserting it if unknown.

        Lookup is case-insensitive.
        """
        row = self._execute(
            "SELECT id FROM base_path WHERE path = ?", (path,)
        ).fetchone()
        if row is not None:
            return int(row["id"])

        cur = self._execute("INSERT INTO base_path (path) VALUES (?)", (path,))
        logger.debug("Registered base path %s as %s", path, cur.lastrowid)
        return int(cur.lastrowid)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_record(self, base_path_id: int, rel_path: str) -> FileRecord | None:
        row = self._execute(
            "SELECT base_path_id, rel_path, modified, file_size, dir "
            "FROM rel_file WHERE base_path_id = ? AND rel_path = ?",
            (base_path_id, rel_path),
        ).fetchone()
        return _to_record(row) if row is not None else None

    def upsert_record(
        self,
        base_path_id: int,
        rel_path: str,
        modified: float,
        size: int,
        is_dir: bool,
    ) -> None:
        """Insert or update the record for *rel_path*."""
        self._execute(
            "INSERT INTO rel_file (base_path_id, rel_path, modified, file_size, dir) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT (base_path_id, rel_path) DO UPDATE SET "
            "modified = excluded.modified, file_size = excluded.file_size, "
            "dir = excluded.dir",
            (base_path_id, rel_path, modified, 0 if is_dir else size, int(is_dir)),
        )

    def delete_record(self, base_path_id: int, rel_path: str) -> None:
        self._execute(
            "DELETE FROM rel_file WHERE base_path_id = ? AND rel_path = ?",
            (base_path_id, rel_path),
        )

    def delete_records_under_dir(self, base_path_id: int, rel_dir: str) -> None:
        """Remove *rel_dir* itself and every record beneath it.

        Matching is on path-segment boundaries: scope ``foo`` removes
        ``foo`` and ``foo/bar.txt`` but not ``foobar.txt`` or ``foo2``.
        An empty *rel_dir* removes every record of the base path.
        """
        rel_dir = rel_dir.strip("/")
        if not rel_dir:
            self.delete_all_records(base_path_id)
            return

        self._execute(
            "DELETE FROM rel_file WHERE base_path_id = ? "
            "AND (rel_path = ? OR rel_path LIKE ? ESCAPE '\\')",
            (base_path_id, rel_dir, _escape_like(rel_dir) + "/%"),
        )

    def delete_all_records(self, base_path_id: int) -> None:
        self._execute(
            "DELETE FROM rel_file WHERE base_path_id = ?", (base_path_id,)
        )

    def any_record_under(self, base_path_id: int, rel_dir: str) -> bool:
        """True if any record lies strictly beneath *rel_dir*."""
        rel_dir = rel_dir.strip("/")
        if not rel_dir:
            row = self._execute(
                "SELECT 1 FROM rel_file WHERE base_path_id = ? AND rel_path <> '' LIMIT 1",
                (base_path_id,),
            ).fetchone()
        else:
            row = self._execute(
                "SELECT 1 FROM rel_file WHERE base_path_id = ? "
                "AND rel_path LIKE ? ESCAPE '\\' LIMIT 1",
                (base_path_id, _escape_like(rel_dir) + "/%"),
            ).fetchone()
        return row is not None

    def all_records(self, base_path_id: int | None = None) -> list[FileRecord]:
        """Every record (of one base path, or of all), ordered by path."""
        if base_path_id is None:
            rows = self._execute(
                "SELECT base_path_id, rel_path, modified, file_size, dir "
                "FROM rel_file ORDER BY base_path_id, rel_path"
            ).fetchall()
        else:
            rows = self._execute(
                "SELECT base_path_id, rel_path, modified, file_size, dir "
                "FROM rel_file WHERE base_path_id = ? ORDER BY rel_path",
                (base_path_id,),
            ).fetchall()
        return [_to_record(r) for r in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageError(f"Metadata database error: {exc}") from exc
