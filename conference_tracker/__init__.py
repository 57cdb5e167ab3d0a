"""Personal conference tracker with offline storage and cloud backup."""

from .records import Booth, BoothQuestion, Connection, Session, SyncState
from .storage import ConferenceStore, DuplicateRecordError, LocalStoreError, RecordNotFoundError
from .tables import BOOTHS, CONNECTIONS, SESSIONS, SYNC_TABLES, TableDescriptor

__all__ = [
    "BOOTHS",
    "CONNECTIONS",
    "SESSIONS",
    "SYNC_TABLES",
    "Booth",
    "BoothQuestion",
    "ConferenceStore",
    "Connection",
    "DuplicateRecordError",
    "LocalStoreError",
    "RecordNotFoundError",
    "Session",
    "SyncState",
    "TableDescriptor",
]
