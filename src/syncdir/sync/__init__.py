"""Directory tree synchronisation engine.

Reconciles two directory trees ("left" and "right") with the help of a
persistent per-side metadata cache, so that deletions can be told apart
from creations across runs.

Architecture
------------
Each side's last-known state lives in a SQLite ``MetadataStore`` keyed
by (base path, relative path).  A live entry counts as *changed* when
its size differs from the cached record, or its modification time lies
more than one minute away from it.  The reconciler walks both trees
depth first and combines the two caches with the live listings to pick
one action per entry.

Modules:

- ``engine``    -- ``SyncEngine``: the tree differ / reconciler.
- ``store``     -- ``MetadataStore``: SQLite cache with job transactions.
- ``filedb``    -- ``FileDb``: one side's view of the store.
- ``detector``  -- change detection with the one-minute tolerance.
- ``paths``     -- ``DirState``, ``IgnoreMatcher``, relative paths.
- ``models``    -- ``FileRecord``, ``ReportEvent``, ``SyncStats``,
  ``JobReport``, ``RunReport``: core data contracts.
- ``reporter``  -- report sinks, text and JSON report formatting.

Usage example
-------------
::

    from syncdir.config_schema import SyncJobConfig
    from syncdir.sync import MetadataStore, RecordingReportSink, SyncEngine

    job = SyncJobConfig(left="/data/photos", right="/mnt/backup/photos")
    sink = RecordingReportSink()

    with MetadataStore("/var/lib/syncdir/syncdir.db") as store:
        # Preview first: nothing is changed on disk or in the cache
        stats = SyncEngine(store, job, sink, dry_run=True).run()
        stats = SyncEngine(store, job, sink).run()
"""

from .engine import SyncEngine
from .filedb import FileDb
from .models import (
    Direction,
    FileOperation,
    FileRecord,
    JobReport,
    ReportEvent,
    RunReport,
    SideStats,
    SyncStats,
)
from .reporter import (
    RecordingReportSink,
    ReportSink,
    format_job_report,
    format_run_report,
    report_to_json,
)
from .store import MetadataStore

__all__ = [
    "Direction",
    "FileDb",
    "FileOperation",
    "FileRecord",
    "JobReport",
    "MetadataStore",
    "RecordingReportSink",
    "ReportEvent",
    "ReportSink",
    "RunReport",
    "SideStats",
    "SyncEngine",
    "SyncStats",
    "format_job_report",
    "format_run_report",
    "report_to_json",
]
