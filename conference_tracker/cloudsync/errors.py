from __future__ import annotations


class CloudSyncError(RuntimeError):
    """Raised when a sync operation cannot be completed."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class RemoteStoreError(CloudSyncError):
    """Raised when the remote store rejects or fails a request."""

    def __init__(self, message: str, *, table: str, status: int | None = None) -> None:
        super().__init__(message, reason="remote_error")
        self.table = table
        self.status = status


__all__ = ["CloudSyncError", "RemoteStoreError"]
