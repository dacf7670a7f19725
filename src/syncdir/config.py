"""Runtime settings for a syncdir run.

Resolves where the metadata database lives and where the report file is
written, from CLI args, environment variables, .env files and the
config file.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > Config file > Built-in defaults

Environment variables:
    SYNCDIR_DB: Path to the metadata database file
        (default: ~/.local/share/syncdir/syncdir.db)
    SYNCDIR_REPORT_DIR: Directory for report files (default: no report file)
    SYNCDIR_TEST: Dry run when true (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from syncdir.config_schema import UnifiedConfig

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("~/.local/share/syncdir/syncdir.db")


@dataclass
class Settings:
    db_path: Path
    report_dir: Path | None = None
    dry_run: bool = False


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_settings(
    db_path: str | None = None,
    report_dir: str | None = None,
    dry_run: bool = False,
    unified: UnifiedConfig | None = None,
) -> Settings:
    """Load settings with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        db_path: Override database path (CLI ``--db``).
        report_dir: Override report directory (CLI ``--report-dir``).
        dry_run: Test mode (CLI ``--test``).
        unified: Parsed config file, used as fallback.

    Returns:
        Settings with absolute, user-expanded paths.
    """
    cfg = unified or UnifiedConfig()

    final_db = (
        db_path
        or os.getenv("SYNCDIR_DB")
        or cfg.database.path
        or str(DEFAULT_DB_PATH)
    )

    final_report = (
        report_dir or os.getenv("SYNCDIR_REPORT_DIR") or cfg.report.dir
    )

    if dry_run:
        final_dry_run = True
    else:
        final_dry_run = bool(_get_bool_env("SYNCDIR_TEST"))

    settings = Settings(
        db_path=Path(final_db).expanduser().resolve(),
        report_dir=(
            Path(final_report).expanduser().resolve()
            if final_report
            else None
        ),
        dry_run=final_dry_run,
    )
    logger.debug("Resolved settings: %s", settings)
    return settings
