"""Static descriptors for the record collections kept in sync."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Generic, TypeVar

from .records import Booth, Connection, Session, SyncState, format_timestamp, parse_timestamp

RecordT = TypeVar("RecordT", Session, Booth, Connection)

OWNER_KEY = "user_id"
UPDATED_AT_KEY = "updated_at"


@dataclass(frozen=True)
class TableDescriptor(Generic[RecordT]):
    """Bind a table name to its record type and its local-only fields."""

    name: str
    record_type: type[RecordT]
    local_only: frozenset[str] = frozenset()

    def to_wire(self, record: RecordT, *, owner_id: str, updated_at: datetime) -> dict[str, Any]:
        """Return the outbound row for ``record`` without local-only data."""

        row: dict[str, Any] = {"id": record.id, **record.payload()}
        for key in self.local_only:
            row.pop(key, None)
        row[OWNER_KEY] = owner_id
        row[UPDATED_AT_KEY] = format_timestamp(updated_at)
        return row

    def from_wire(self, row: Mapping[str, Any]) -> RecordT:
        """Build a clean local record from a remote row."""

        return self.record_type.from_payload(
            str(row["id"]),
            row,
            sync_state=SyncState.CLEAN,
            updated_at=parse_timestamp(row.get(UPDATED_AT_KEY)),
        )

    def local_fields(self, record: RecordT) -> dict[str, Any]:
        return {key: getattr(record, key) for key in self.local_only}

    def with_local_fields(self, record: RecordT, source: RecordT) -> RecordT:
        """Copy local-only fields from ``source`` onto ``record``."""

        if not self.local_only:
            return record
        return replace(record, **self.local_fields(source))


SESSIONS: TableDescriptor[Session] = TableDescriptor("sessions", Session, frozenset({"audio"}))
BOOTHS: TableDescriptor[Booth] = TableDescriptor("booths", Booth)
CONNECTIONS: TableDescriptor[Connection] = TableDescriptor("connections", Connection, frozenset({"audio"}))

# Processing order matters: sessions, then booths, then connections.
SYNC_TABLES: tuple[TableDescriptor[Any], ...] = (SESSIONS, BOOTHS, CONNECTIONS)

__all__ = [
    "BOOTHS",
    "CONNECTIONS",
    "OWNER_KEY",
    "SESSIONS",
    "SYNC_TABLES",
    "UPDATED_AT_KEY",
    "TableDescriptor",
]
