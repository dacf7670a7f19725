"""Report sinks and report formatting.

The reconciler never prints.  It hands every operation, error and
warning to a ``ReportSink`` in the order they happen:

- ``ReportSink`` -- the interface (and a no-op base).
- ``RecordingReportSink`` -- collects ``ReportEvent`` objects and logs
  each one; the orchestrator builds ``JobReport`` from it.

Formatting functions:

- ``format_size`` -- human-readable byte counts.
- ``format_job_report`` / ``format_run_report`` -- text report.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import asdict

from .models import (
    Direction,
    EventKind,
    FileOperation,
    JobReport,
    ReportEvent,
    RunReport,
    SyncStats,
)

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Sinks
# ------------------------------------------------------------------


class ReportSink:
    """Receiver of reconciler events.  The base class ignores them."""

    def operation(
        self,
        action: FileOperation,
        direction: Direction,
        rel_path: str,
        size: int | None,
        reason: str,
    ) -> None:
        pass

    def error(self, message: str, exc: BaseException | None = None) -> None:
        pass

    def warning(self, message: str) -> None:
        pass


class RecordingReportSink(ReportSink):
    """Collect events in order and echo them to the log.

    Args:
        echo: Log each event as it arrives (operations at INFO, errors
            at ERROR with the traceback at DEBUG, warnings at WARNING).
    """

    def __init__(self, echo: bool = True) -> None:
        self.events: list[ReportEvent] = []
        self._echo = echo

    def operation(
        self,
        action: FileOperation,
        direction: Direction,
        rel_path: str,
        size: int | None,
        reason: str,
    ) -> None:
        self.events.append(
            ReportEvent(
                kind=EventKind.OPERATION,
                action=action,
                direction=direction,
                rel_path=rel_path,
                size=size,
                reason=reason,
            )
        )
        if self._echo:
            logger.info(
                "%s: %s %s (%s)",
                action.value,
                direction.value,
                rel_path or ".",
                reason,
            )

    def error(self, message: str, exc: BaseException | None = None) -> None:
        detail = None
        if exc is not None:
            detail = f"{type(exc).__name__}: {exc}"
        self.events.append(
            ReportEvent(kind=EventKind.ERROR, message=message, detail=detail)
        )
        if self._echo:
            if detail:
                logger.error("%s %s", message, detail)
            else:
                logger.error("%s", message)
            if exc is not None:
                logger.debug(
                    "".join(
                        traceback.format_exception(
                            type(exc), exc, exc.__traceback__
                        )
                    )
                )

    def warning(self, message: str) -> None:
        self.events.append(
            ReportEvent(kind=EventKind.WARNING, message=message)
        )
        if self._echo:
            logger.warning("%s", message)


# ------------------------------------------------------------------
# Byte sizes
# ------------------------------------------------------------------

_UNITS = ["KB", "MB", "GB", "TB", "PB"]


def format_size(num_bytes: int | None) -> str:
    """Format a byte count, e.g. ``512 B``, ``1.5 KB``, ``-3.2 MB``."""
    if num_bytes is None:
        return ""
    sign = "-" if num_bytes < 0 else ""
    value = float(abs(num_bytes))
    if value < 1024:
        return f"{sign}{int(value)} B"
    for unit in _UNITS:
        value /= 1024
        if value < 1024 or unit == _UNITS[-1]:
            return f"{sign}{value:.1f} {unit}"
    return f"{sign}{value:.1f} {_UNITS[-1]}"


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _format_event(event: ReportEvent) -> str:
    if event.action is not None and event.direction is not None:
        size = f" [{format_size(event.size)}]" if event.size is not None else ""
        return (
            f"  {event.action.value}: {event.direction.value} "
            f"{event.rel_path or '.'}{size} ({event.reason})"
        )
    if event.kind == EventKind.ERROR:
        detail = f": {event.detail}" if event.detail else ""
        return f"  ERROR {event.message}{detail}"
    return f"  WARNING {event.message}"


def format_summary(stats: SyncStats) -> list[str]:
    """Summary lines with ``left - right`` values per counter."""
    rows = [
        ("Directories analyzed", "dirs_analyzed", False),
        ("Directories created", "dirs_created", False),
        ("Directories deleted", "dirs_deleted", False),
        ("Files analyzed", "files_analyzed", False),
        ("Files copied", "files_copied", False),
        ("Files deleted", "files_deleted", False),
        ("Size copied", "bytes_copied", True),
        ("Size deleted", "bytes_deleted", True),
        ("Size net", "bytes_net", True),
    ]
    lines = []
    for label, attr, is_size in rows:
        left = getattr(stats.left, attr)
        right = getattr(stats.right, attr)
        if is_size:
            left, right = format_size(left), format_size(right)
        lines.append(f"{label}: {left} - {right}")
    lines.append(f"Errors: {stats.errors}")
    lines.append(f"Warnings: {stats.warnings}")
    return lines


def format_job_report(report: JobReport) -> str:
    """Format one job as a section: title, events, then counters.

    Args:
        report: The completed job report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    header = report.label
    if report.dry_run:
        header += " (TEST)"
    if not report.completed:
        header += " (NOT COMPLETED)"
    lines.append(header)
    lines.append("")

    if report.events:
        for event in report.events:
            lines.append(_format_event(event))
    else:
        lines.append("  No changes needed.")
    lines.append("")

    lines.extend(format_summary(report.stats))
    return "\n".join(lines)


def format_run_report(report: RunReport) -> str:
    """Format a full run: header, one section per job, totals."""
    lines: list[str] = []
    header = "Synchronization Log"
    if report.dry_run:
        header += " (TEST - no changes were made)"
    lines.append(header)
    lines.append(f"Start Time: {report.started_at}")
    if report.completed_at:
        lines.append(f"End Time: {report.completed_at}")
    lines.append("")

    for job in report.jobs:
        lines.append(format_job_report(job))
        lines.append("")

    if len(report.jobs) > 1:
        lines.append("Totals")
        lines.extend(format_summary(report.totals))

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _event_to_json(event: ReportEvent) -> dict:
    entry: dict = {"kind": event.kind.value}
    if event.kind == EventKind.OPERATION:
        entry["action"] = event.action.value if event.action else None
        entry["target"] = (
            event.direction.target if event.direction else None
        )
        entry["path"] = event.rel_path
        entry["size"] = event.size
        entry["reason"] = event.reason
    else:
        entry["message"] = event.message
        if event.detail:
            entry["detail"] = event.detail
    return entry


def report_to_json(report: RunReport) -> dict:
    """Convert a run report to a structured dict for JSON serialisation.

    Args:
        report: The run report.

    Returns:
        Dict with run info, per-job events and counters, and totals.
    """
    return {
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "jobs": [
            {
                "label": job.label,
                "master": job.master,
                "completed": job.completed,
                "started_at": job.started_at,
                "completed_at": job.completed_at,
                "stats": asdict(job.stats),
                "events": [_event_to_json(e) for e in job.events],
            }
            for job in report.jobs
        ],
        "totals": asdict(report.totals),
    }
