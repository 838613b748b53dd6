class SyncError(Exception):
    """Base exception for synchronization errors."""


class SyncCancelledError(SyncError):
    """Raised when a run is cancelled before its cursor was advanced."""


class SyncAlreadyRunningError(SyncError):
    """Raised when a tenant already has a sync in flight."""
