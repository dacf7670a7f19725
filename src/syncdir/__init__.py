"""syncdir -- one-way and two-way directory tree synchronisation.

Mirrors a "left" directory tree onto a "right" one (or the reverse), or
reconciles both trees so that each converges to the newer state.  A
SQLite metadata cache remembers what every file looked like after the
last run, which is how deletions and one-sided edits are told apart
from plain differences.
"""

__version__ = "1.0.0"
