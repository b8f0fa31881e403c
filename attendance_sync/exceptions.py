"""Error taxonomy shared by the queue, the remote client and the orchestrator."""


class SyncError(Exception):
    """Base class for sync agent errors."""


class NetworkError(SyncError):
    """Transport-level failure: unreachable host, DNS, timeout, or offline.

    Transient. Queued work is retried on the next run without intervention.
    """


class ApplicationError(SyncError):
    """Structured rejection from the remote service (validation, not found, conflict)."""

    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self):
        return self.message


class StorageError(SyncError):
    """Local queue database unavailable or write rejected."""


class SyncInProgressError(RuntimeError):
    """Raised by the sync lock when another run already holds it."""
