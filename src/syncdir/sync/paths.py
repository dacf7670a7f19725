"""Path scope helpers for the reconciler.

- ``IgnoreMatcher`` -- the job's ignore predicate over relative paths.
- ``join_rel`` -- compose ``/``-separated relative paths.
- ``DirState`` -- parameter bundle for one directory level of the walk:
  the job, both sides' ``FileDb`` accessors and the derived absolute
  paths.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from syncdir.sync.filedb import FileDb


def join_rel(parent: str, name: str) -> str:
    """Relative path of *name* inside the relative directory *parent*."""
    return f"{parent}/{name}" if parent else name


class IgnoreMatcher:
    """Case-insensitive regex ignore list.

    A relative path is ignored when any pattern matches anywhere in it
    (``re.search``).
    """

    def __init__(self, patterns: Iterable[re.Pattern[str] | str] = ()) -> None:
        self._patterns = [
            p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
            for p in patterns
        ]

    def is_ignored(self, rel_path: str) -> bool:
        return any(p.search(rel_path) for p in self._patterns)


@dataclass(frozen=True)
class DirState:
    """One directory level being compared.

    ``rel_path`` is the level's key in both caches and in the report.
    ``left_rel`` and ``right_rel`` are the same level as spelt on each
    disk; they differ from ``rel_path`` only when the two sides name a
    directory with different letter case.

    Attributes:
        rel_path: Relative path of this level (``""`` at the root).
        left_db: Left side accessor.
        right_db: Right side accessor.
        ignore: The job's ignore predicate.
        left_rel: On-disk relative path on the left.
        right_rel: On-disk relative path on the right.
    """

    rel_path: str
    left_db: FileDb
    right_db: FileDb
    ignore: IgnoreMatcher
    left_rel: str = ""
    right_rel: str = ""

    @classmethod
    def root(
        cls,
        left_db: FileDb,
        right_db: FileDb,
        ignore: IgnoreMatcher,
    ) -> DirState:
        return cls("", left_db, right_db, ignore)

    def child(self, left_name: str, right_name: str | None = None) -> DirState:
        """State for subdirectory *left_name* (spelt *right_name* on the
        right, when that differs)."""
        return DirState(
            join_rel(self.rel_path, left_name),
            self.left_db,
            self.right_db,
            self.ignore,
            join_rel(self.left_rel, left_name),
            join_rel(self.right_rel, right_name or left_name),
        )

    def db(self, side: str) -> FileDb:
        return self.left_db if side == "left" else self.right_db

    def abs_path(self, side: str) -> Path:
        """Absolute path of this level on *side*."""
        rel = self.left_rel if side == "left" else self.right_rel
        return self.db(side).abs_path(rel)

    def abs_name(self, side: str, name: str) -> Path:
        """Absolute path of entry *name* of this level on *side*."""
        return self.abs_path(side) / name

    def rel_name(self, name: str) -> str:
        return join_rel(self.rel_path, name)
