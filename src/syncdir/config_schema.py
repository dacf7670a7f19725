"""Unified configuration schema for syncdir.

Defines Pydantic models for the config file: the list of sync jobs plus
dedicated sections for the metadata database, the report file and
logging.

Usage:
    from syncdir.config_loader import load_config_file
    from syncdir.config_schema import build_config

    unified = build_config(load_config_file(Path("jobs.yml")))
    for job in unified.directories:
        ...
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from pydantic import BaseModel, Field, PrivateAttr, field_validator

logger = logging.getLogger(__name__)


class MasterMode(str, Enum):
    """Which side of a sync job is authoritative."""

    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"


# ---------------------------------------------------------------------------
# Sync job
# ---------------------------------------------------------------------------


class SyncJobConfig(BaseModel):
    """One pair of directory trees to reconcile.

    Ignore patterns are regular expressions matched case-insensitively
    (``re.search``) against the entry's path relative to the job root,
    using ``/`` as separator.  They are compiled when the model is
    validated, so a bad pattern fails before any filesystem work.
    """

    left: str = Field(description="Left directory")
    right: str = Field(description="Right directory")
    master: MasterMode = Field(
        default=MasterMode.LEFT,
        description="left, right or both",
    )
    ignore: list[str] = Field(
        default_factory=list,
        description="Regular expressions of relative paths to skip",
    )

    model_config = {"frozen": True}

    _ignore_rx: list[re.Pattern[str]] = PrivateAttr(default_factory=list)

    @field_validator("master", mode="before")
    @classmethod
    def _normalise_master(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("ignore", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("ignore")
    @classmethod
    def _check_patterns(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                raise ValueError(
                    f"Ignore pattern '{pattern}' is not a valid regular expression: {exc}"
                ) from None
        return patterns

    def model_post_init(self, __context: object) -> None:
        self._ignore_rx = [re.compile(p, re.IGNORECASE) for p in self.ignore]

    @property
    def ignore_patterns(self) -> list[re.Pattern[str]]:
        """Compiled ignore patterns."""
        return self._ignore_rx

    @property
    def label(self) -> str:
        """Section title, e.g. ``/a -> /b`` for left-master jobs."""
        arrow = {
            MasterMode.LEFT: "->",
            MasterMode.RIGHT: "<-",
            MasterMode.BOTH: "<->",
        }[self.master]
        return f"{self.left} {arrow} {self.right}"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """Location of the SQLite metadata cache."""

    path: str | None = Field(
        default=None, description="Path to the metadata database file"
    )

    model_config = {"frozen": True}


class ReportConfig(BaseModel):
    """Where to write the run report (no report file when unset)."""

    dir: str | None = Field(
        default=None, description="Directory for report files"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is valid; it simply
    has no jobs to run.
    """

    directories: list[SyncJobConfig] = Field(default_factory=list)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    @field_validator("directories", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from a raw config dict.

    Handles missing sections gracefully; anything absent gets defaults.

    Raises:
        pydantic.ValidationError: If a job is malformed (missing paths,
            unknown master mode, invalid ignore regex).
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
