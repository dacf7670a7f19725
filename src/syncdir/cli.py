"""Command-line entry point for syncdir.

Usage::

    syncdir [--left|--right|--both] [--test] [--report-dir DIR] [--db PATH]
            [--debug] [--log-file F] [--log-format text|json] [--json]
            (CONFIG_FILE | LEFT RIGHT)

With no positional argument the config file is discovered (see
``syncdir.config_loader``).

Exit codes: 0 after a completed run (even with reported errors), 1 on an
unhandled exception or a metadata store failure, 2 on usage and
configuration errors.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from syncdir import __version__
from syncdir.config import load_settings
from syncdir.config_loader import load_config_file, load_hierarchical_config
from syncdir.config_schema import MasterMode, SyncJobConfig, UnifiedConfig, build_config
from syncdir.errors import ConfigurationError, StorageError
from syncdir.logger import setup_logging
from syncdir.runner import run_jobs, write_report_file
from syncdir.sync.reporter import format_run_report, report_to_json
from syncdir.sync.store import MetadataStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncdir",
        description="Synchronise two directory trees, one-way or both ways.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Mirror a folder onto a backup drive
  syncdir /data/photos /mnt/backup/photos

  # Preview a two-way sync without changing anything
  syncdir --both --test ~/notes /mnt/usb/notes

  # Run every job of a config file and keep a report
  syncdir --report-dir ~/sync-reports jobs.yml

Config file (YAML, or JSON):
  directories:
    - left: /data/photos
      right: /mnt/backup/photos
      master: left            # left, right or both
      ignore: ['\\.tmp$', '^cache/']
        """,
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--left",
        dest="master",
        action="store_const",
        const=MasterMode.LEFT,
        help="Left is master: make right identical to left (default)",
    )
    mode.add_argument(
        "--right",
        dest="master",
        action="store_const",
        const=MasterMode.RIGHT,
        help="Right is master: make left identical to right",
    )
    mode.add_argument(
        "--both",
        dest="master",
        action="store_const",
        const=MasterMode.BOTH,
        help="Both are master: propagate changes either way",
    )

    parser.add_argument(
        "--test",
        action="store_true",
        help="Dry run: report what would be done, change nothing",
    )
    parser.add_argument(
        "--report-dir",
        help="Write the run report to a file in this directory "
        "(overrides SYNCDIR_REPORT_DIR and the config file)",
    )
    parser.add_argument(
        "--db",
        help="Metadata database file "
        "(overrides SYNCDIR_DB; default: ~/.local/share/syncdir/syncdir.db)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write the log to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the run report as JSON on stdout",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"syncdir version {__version__}",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        metavar="PATH",
        help="CONFIG_FILE, or the LEFT and RIGHT directories",
    )
    return parser


def _load_unified(
    args: argparse.Namespace, parser: argparse.ArgumentParser
) -> UnifiedConfig:
    """Build the job list from the positional arguments or discovery.

    Raises:
        ConfigurationError: Bad config file or bad directories.
    """
    if len(args.paths) > 2:
        parser.error("expected CONFIG_FILE or LEFT RIGHT")

    try:
        if len(args.paths) == 2:
            left, right = args.paths
            for side, value in (("left", left), ("right", right)):
                if not Path(value).expanduser().is_dir():
                    raise ConfigurationError(
                        f"Folder on {side} does not exist: {value}"
                    )
            return UnifiedConfig(
                directories=[
                    SyncJobConfig(
                        left=left,
                        right=right,
                        master=args.master or MasterMode.LEFT,
                    )
                ]
            )

        if len(args.paths) == 1:
            raw = load_config_file(Path(args.paths[0]).expanduser())
        else:
            raw = load_hierarchical_config()
        unified = build_config(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    if not unified.directories:
        raise ConfigurationError("No directories to synchronise")

    # A mode flag overrides the master of every configured job.
    if args.master is not None:
        unified = unified.model_copy(
            update={
                "directories": [
                    SyncJobConfig(**{**job.model_dump(), "master": args.master})
                    for job in unified.directories
                ]
            }
        )
    return unified


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the jobs and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging(
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.log_format,
    )

    try:
        unified = _load_unified(args, parser)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    settings = load_settings(
        db_path=args.db,
        report_dir=args.report_dir,
        dry_run=args.test,
        unified=unified,
    )

    try:
        with MetadataStore(settings.db_path) as store:
            report = run_jobs(store, unified.directories, settings.dry_run)
    except StorageError as exc:
        logger.error("Metadata store failure: %s", exc)
        logger.debug("Storage error details", exc_info=True)
        return EXIT_FAILURE
    except Exception:
        logger.exception("Unhandled error")
        return EXIT_FAILURE

    if settings.report_dir is not None:
        write_report_file(report, settings.report_dir)
    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_run_report(report))
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    run()
