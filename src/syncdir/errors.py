"""
Exceptions for syncdir.
"""


class SyncDirError(Exception):
    """Base exception for syncdir."""


class ConfigurationError(SyncDirError):
    """Raised for bad arguments, unreadable config or invalid sync jobs."""


class StorageError(SyncDirError):
    """Raised when the metadata store cannot be read or written.

    Storage errors are fatal to the whole run: the reconciler never
    swallows them.
    """
