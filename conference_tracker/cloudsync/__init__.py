"""Offline-first sync between the local conference store and the cloud."""

from .auth import (
    CloudAuthClient,
    CloudAuthError,
    CloudAuthTokens,
    IdentityProvider,
    Principal,
    TokenIdentityProvider,
)
from .conflict import LastWriterWins, MergeDecision
from .errors import CloudSyncError, RemoteStoreError
from .events import SyncPhase, SyncProgressEvent, SyncReport, TableSyncResult
from .manager import CloudSyncConfig, CloudSyncManager
from .orchestrator import SyncOrchestrator
from .remote_store import RemoteStore, RemoteStoreProtocol

__all__ = [
    "CloudAuthClient",
    "CloudAuthError",
    "CloudAuthTokens",
    "CloudSyncConfig",
    "CloudSyncError",
    "CloudSyncManager",
    "IdentityProvider",
    "LastWriterWins",
    "MergeDecision",
    "Principal",
    "RemoteStore",
    "RemoteStoreError",
    "RemoteStoreProtocol",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncProgressEvent",
    "SyncReport",
    "TableSyncResult",
    "TokenIdentityProvider",
]
