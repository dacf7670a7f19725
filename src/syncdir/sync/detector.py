"""Change detection against the metadata cache.

Comparison is by size and modification time only.  Modification times
within ``MODIFIED_TOLERANCE`` seconds of each other count as equal; the
window absorbs timestamp resolution and timezone/DST differences between
filesystems.
"""

from __future__ import annotations

from syncdir.sync.models import FileRecord

MODIFIED_TOLERANCE = 60.0

SIZE_CHANGED = "size changed in db"
MODIFIED_CHANGED = "modified date changed in db"


def modified_close(a: float, b: float) -> bool:
    """True if two modification times are within the tolerance window."""
    return abs(a - b) <= MODIFIED_TOLERANCE


def has_changed(
    record: FileRecord | None, live_modified: float, live_size: int
) -> tuple[bool, str]:
    """Decide whether a file differs from its cached state.

    Returns ``(changed, reason)``.  A missing record is never "changed":
    new files are found by comparing the two listings, not here.
    """
    if record is None:
        return False, ""

    if record.size != live_size:
        return True, SIZE_CHANGED

    if not modified_close(record.modified, live_modified):
        return True, MODIFIED_CHANGED

    return False, ""
