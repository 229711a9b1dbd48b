"""
Error taxonomy for the sync engine.

Pass-fatal errors (ConfigurationError, ConnectivityError) abort a sync pass
and surface in its result. Per-record errors (RemoteStoreError,
PerRecordError) are counted and leave the record's metadata in `error`.
BookkeepingError is logged and swallowed by the change tracker.
NotFoundError propagates from local CRUD to its caller.
"""
from typing import Optional


class SyncError(RuntimeError):
    """Base class for all sync engine errors."""


# ── Pass-fatal ────────────────────────────────────────────────────────────────

class ConfigurationError(SyncError):
    """Raised when the remote store is not configured or rejects our key."""


class ConnectivityError(SyncError):
    """Raised when the remote store cannot be reached."""


# ── Per-record ────────────────────────────────────────────────────────────────

class RemoteStoreError(SyncError):
    """Raised when the remote store answers a request with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(RemoteStoreError):
    """Raised when an update targets a remote row that does not exist."""


class PerRecordError(SyncError):
    """Raised for a single record that cannot be reconciled."""


# ── Local store ───────────────────────────────────────────────────────────────

class BookkeepingError(SyncError):
    """Raised when sync_metadata / sync_log cannot be read or written."""


class NotFoundError(SyncError):
    """Raised when an update or delete references a missing local record."""


class UnknownTableError(SyncError):
    """Raised when a store call names a table that is not part of the schema."""
