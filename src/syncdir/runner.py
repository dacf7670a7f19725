"""Run orchestrator.

Runs every configured sync job in order against one metadata store and
collects a ``RunReport``.  A job whose roots are missing, or which fails
with anything but a storage error, is reported and skipped; the next job
still runs.  ``StorageError`` aborts the whole run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from syncdir.config_schema import SyncJobConfig
from syncdir.errors import ConfigurationError, StorageError
from syncdir.sync.engine import SyncEngine
from syncdir.sync.models import JobReport, RunReport, SyncStats
from syncdir.sync.reporter import RecordingReportSink, format_run_report
from syncdir.sync.store import MetadataStore

logger = logging.getLogger(__name__)

REPORT_PREFIX = "syncdir-report-"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_roots(job: SyncJobConfig) -> None:
    """Raise ``ConfigurationError`` unless both roots of *job* exist."""
    for side in ("left", "right"):
        root = Path(getattr(job, side)).expanduser()
        if not root.is_dir():
            raise ConfigurationError(
                f"Folder on {side} does not exist: {getattr(job, side)}"
            )


def run_job(
    store: MetadataStore,
    job: SyncJobConfig,
    dry_run: bool = False,
    echo: bool = True,
) -> JobReport:
    """Run one sync job and return its report.

    Raises:
        StorageError: The metadata store failed; the job's transaction
            has been rolled back.
    """
    started_at = _now()
    sink = RecordingReportSink(echo=echo)
    stats = SyncStats()
    completed = True

    logger.info("Sync %s%s", job.label, " (TEST)" if dry_run else "")
    try:
        check_roots(job)
        stats = SyncEngine(store, job, sink, dry_run=dry_run).run()
    except StorageError:
        raise
    except ConfigurationError as exc:
        sink.error(str(exc))
        stats.errors += 1
        completed = False
    except Exception as exc:
        sink.error("Exception when running sync.", exc)
        stats.errors += 1
        completed = False

    return JobReport(
        label=job.label,
        master=job.master.value,
        dry_run=dry_run,
        events=sink.events,
        stats=stats,
        completed=completed,
        started_at=started_at,
        completed_at=_now(),
    )


def run_jobs(
    store: MetadataStore,
    jobs: Iterable[SyncJobConfig],
    dry_run: bool = False,
    echo: bool = True,
) -> RunReport:
    """Run *jobs* in order and return the run report.

    Args:
        store: Open metadata store shared by all jobs.
        jobs: Sync jobs, run sequentially.
        dry_run: Test mode for every job.
        echo: Log each event as it happens.
    """
    started_at = _now()
    reports = [run_job(store, job, dry_run, echo) for job in jobs]
    return RunReport(
        dry_run=dry_run,
        jobs=reports,
        started_at=started_at,
        completed_at=_now(),
    )


def report_file_path(report_dir: Path, when: datetime | None = None) -> Path:
    """Pick a free report file name in *report_dir*.

    The name is ``syncdir-report-YYYY-MM-DD_HH.MM.SS.txt``; `` (2)``,
    `` (3)``, ... is appended while that name is taken.
    """
    stamp = (when or datetime.now()).strftime("%Y-%m-%d_%H.%M.%S")
    base = f"{REPORT_PREFIX}{stamp}"
    path = report_dir / f"{base}.txt"
    n = 2
    while path.exists():
        path = report_dir / f"{base} ({n}).txt"
        n += 1
    return path


def write_report_file(report: RunReport, report_dir: Path) -> Path:
    """Write the text report into *report_dir* and return its path."""
    report_dir.mkdir(parents=True, exist_ok=True)
    path = report_file_path(report_dir)
    path.write_text(format_run_report(report) + "\n", encoding="utf-8")
    logger.info("Report written to %s", path)
    return path
