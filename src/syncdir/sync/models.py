"""Data models for the directory sync engine.

Defines the data contracts used across the sync modules:

- ``FileRecord``: One cached entry of the metadata store.
- ``FileOperation``: The filesystem actions the reconciler reports.
- ``Direction``: Which way an action flows.
- ``ReportEvent``: One operation, error or warning, in walk order.
- ``SideStats`` / ``SyncStats``: Counters returned by each directory
  level and merged by its caller.
- ``JobReport`` / ``RunReport``: Aggregate results of a job and a run.

Records, events and reports are frozen.  The counters are plain mutable
dataclasses because every recursion level fills its own and merges its
children's.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel


class FileOperation(str, Enum):
    """Filesystem actions reported by the reconciler."""

    COPY_FILE = "Copy File"
    CREATE_DIR = "Create Dir"
    DELETE_FILE = "Delete File"
    DELETE_DIR = "Delete Dir"


class Direction(str, Enum):
    """Direction of an action; the target side receives the change."""

    LEFT_TO_RIGHT = "-->"
    RIGHT_TO_LEFT = "<--"

    @property
    def target(self) -> str:
        """Name of the side that is modified (``"left"``/``"right"``)."""
        return "right" if self is Direction.LEFT_TO_RIGHT else "left"


class EventKind(str, Enum):
    OPERATION = "operation"
    ERROR = "error"
    WARNING = "warning"


class FileRecord(BaseModel):
    """Last-known state of one entry under a base path.

    Attributes:
        base_path_id: Identifier of the side's root in the store.
        rel_path: Path relative to the root, ``/``-separated.
        modified: Modification time (POSIX timestamp) at last sync.
        size: File size in bytes; meaningless for directories.
        is_dir: True for directory records.
    """

    base_path_id: int
    rel_path: str
    modified: float
    size: int
    is_dir: bool

    model_config = {"frozen": True}


class ReportEvent(BaseModel):
    """One entry of the report, emitted in the order of the walk.

    Operation events carry ``action``, ``rel_path``, ``size`` and
    ``reason``; error events carry ``message`` and ``detail`` (the
    exception text); warning events carry ``message``.
    """

    kind: EventKind
    action: FileOperation | None = None
    direction: Direction | None = None
    rel_path: str | None = None
    size: int | None = None
    reason: str | None = None
    message: str | None = None
    detail: str | None = None

    model_config = {"frozen": True}


@dataclass
class SideStats:
    """Counters for one side of a job."""

    dirs_analyzed: int = 0
    dirs_created: int = 0
    dirs_deleted: int = 0
    files_analyzed: int = 0
    files_copied: int = 0
    files_deleted: int = 0
    bytes_copied: int = 0
    bytes_deleted: int = 0
    bytes_net: int = 0

    def merge(self, other: SideStats) -> None:
        """Add *other*'s counters into this one."""
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(self, name) + getattr(other, name))


@dataclass
class SyncStats:
    """Result of walking one directory level (and everything below it)."""

    left: SideStats = field(default_factory=SideStats)
    right: SideStats = field(default_factory=SideStats)
    errors: int = 0
    warnings: int = 0

    def side(self, name: str) -> SideStats:
        return self.left if name == "left" else self.right

    def merge(self, other: SyncStats) -> None:
        self.left.merge(other.left)
        self.right.merge(other.right)
        self.errors += other.errors
        self.warnings += other.warnings


class JobReport(BaseModel):
    """Outcome of one sync job.

    Attributes:
        label: Section title, e.g. ``"/src -> /backup"``.
        master: ``left``, ``right`` or ``both``.
        dry_run: Whether filesystem mutations were suppressed.
        events: Operations, errors and warnings in walk order.
        stats: Aggregated counters.
        completed: False when the job was skipped or aborted.
        started_at: ISO 8601 timestamp when the job started.
        completed_at: ISO 8601 timestamp when the job ended.
    """

    label: str
    master: str
    dry_run: bool = False
    events: list[ReportEvent] = []
    stats: SyncStats
    completed: bool = True
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def operations(self) -> list[ReportEvent]:
        return [e for e in self.events if e.kind == EventKind.OPERATION]

    @property
    def errors(self) -> list[ReportEvent]:
        return [e for e in self.events if e.kind == EventKind.ERROR]

    @property
    def warnings(self) -> list[ReportEvent]:
        return [e for e in self.events if e.kind == EventKind.WARNING]


class RunReport(BaseModel):
    """Aggregate report for a full run over all configured jobs."""

    dry_run: bool = False
    jobs: list[JobReport] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def totals(self) -> SyncStats:
        """Counters summed over every job."""
        total = SyncStats()
        for job in self.jobs:
            total.merge(job.stats)
        return total
