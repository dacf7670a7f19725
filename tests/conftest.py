"""Shared pytest fixtures for syncdir tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from syncdir.config_schema import SyncJobConfig
from syncdir.sync.engine import SyncEngine
from syncdir.sync.reporter import RecordingReportSink
from syncdir.sync.store import MetadataStore

# A fixed, whole-second base time so tests can reason about tolerances.
T0 = 1_700_000_000.0


def set_mtime(path: Path, mtime: float) -> None:
    """Set both access and modification time of *path*."""
    os.utime(path, (mtime, mtime))


def write_file(
    root: Path, rel: str, content: str | bytes = "x", mtime: float | None = T0
) -> Path:
    """Create *root/rel* (and its parents) with *content* and *mtime*."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode()
    path.write_bytes(content)
    if mtime is not None:
        set_mtime(path, mtime)
    return path


def tree(root: Path) -> dict[str, bytes | None]:
    """Snapshot of a tree: relative path -> bytes (None for directories)."""
    snapshot: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        snapshot[rel] = None if path.is_dir() else path.read_bytes()
    return snapshot


@pytest.fixture
def store(tmp_path: Path):
    """Metadata store backed by a file in ``tmp_path``."""
    s = MetadataStore(tmp_path / "db" / "syncdir.db")
    yield s
    s.close()


@pytest.fixture
def roots(tmp_path: Path) -> tuple[Path, Path]:
    """Empty left and right roots."""
    left = tmp_path / "left"
    right = tmp_path / "right"
    left.mkdir()
    right.mkdir()
    return left, right


@pytest.fixture
def sync(store, roots):
    """Run one job over ``roots``; returns ``(stats, sink)``."""
    left, right = roots

    def _sync(master: str = "left", dry_run: bool = False, ignore=None):
        job = SyncJobConfig(
            left=str(left), right=str(right), master=master, ignore=ignore
        )
        sink = RecordingReportSink(echo=False)
        stats = SyncEngine(store, job, sink, dry_run=dry_run).run()
        return stats, sink

    return _sync
