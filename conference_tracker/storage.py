"""SQLite-backed offline store for sessions, booths and connections."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Generic

from .records import SyncState, format_timestamp, parse_timestamp
from .tables import SYNC_TABLES, RecordT, TableDescriptor

_LOGGER = logging.getLogger(__name__)


class LocalStoreError(RuntimeError):
    """Raised when the local store rejects an operation."""


class DuplicateRecordError(LocalStoreError):
    """Raised when adding a record whose id already exists."""


class RecordNotFoundError(LocalStoreError):
    """Raised when updating a record that does not exist."""


class ConferenceStore:
    """Local database holding one table per :class:`TableDescriptor`."""

    def __init__(self, path: str | Path, tables: Iterable[TableDescriptor[Any]] = SYNC_TABLES) -> None:
        self._is_memory = str(path) == ":memory:"
        self.path = Path(path)
        if not self._is_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._shared_conn: sqlite3.Connection | None = None
        self.descriptors = tuple(tables)
        self._ensure_schema()

    # ------------------------------------------------------------------
    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self._is_memory:
            if self._shared_conn is None:
                self._shared_conn = sqlite3.connect(":memory:")
                self._shared_conn.row_factory = sqlite3.Row
            yield self._shared_conn
        else:
            conn = sqlite3.connect(self.path)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
            finally:
                conn.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for descriptor in self.descriptors:
                local_columns = "".join(f"{column} BLOB,\n" for column in sorted(descriptor.local_only))
                conn.executescript(
                    f"""
                    CREATE TABLE IF NOT EXISTS {descriptor.name} (
                        id TEXT PRIMARY KEY,
                        payload TEXT NOT NULL,
                        {local_columns}
                        sync_state TEXT NOT NULL DEFAULT 'dirty',
                        updated_at TEXT
                    );

                    CREATE INDEX IF NOT EXISTS idx_{descriptor.name}_sync_state
                        ON {descriptor.name}(sync_state);
                    """
                )
            conn.commit()

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None

    # ------------------------------------------------------------------
    def table(self, descriptor: TableDescriptor[RecordT]) -> LocalTable[RecordT]:
        if descriptor not in self.descriptors:
            raise LocalStoreError(f"unknown table {descriptor.name}")
        return LocalTable(self, descriptor)

    def pending_count(self) -> int:
        """Return how many records across all tables still need a push."""

        return sum(self.table(descriptor).count(SyncState.DIRTY) for descriptor in self.descriptors)


class LocalTable(Generic[RecordT]):
    """Key-addressed view over a single table of the :class:`ConferenceStore`."""

    def __init__(self, store: ConferenceStore, descriptor: TableDescriptor[RecordT]) -> None:
        self.store = store
        self.descriptor = descriptor
        self.name = descriptor.name
        self._local_columns = tuple(sorted(descriptor.local_only))

    # ------------------------------------------------------------------
    def get(self, record_id: str) -> RecordT | None:
        with self.store._connection() as conn:
            row = conn.execute(f"SELECT * FROM {self.name} WHERE id = ?", (record_id,)).fetchone()
        return None if row is None else self._decode(row)

    def all(self) -> list[RecordT]:
        return self.query()

    def query(
        self,
        predicate: Callable[[RecordT], bool] | None = None,
        *,
        sync_state: SyncState | None = None,
    ) -> list[RecordT]:
        sql = f"SELECT * FROM {self.name}"
        params: tuple[Any, ...] = ()
        if sync_state is not None:
            sql += " WHERE sync_state = ?"
            params = (SyncState(sync_state).value,)
        with self.store._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        records = [self._decode(row) for row in rows]
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]

    def count(self, sync_state: SyncState | None = None) -> int:
        sql = f"SELECT COUNT(*) AS total FROM {self.name}"
        params: tuple[Any, ...] = ()
        if sync_state is not None:
            sql += " WHERE sync_state = ?"
            params = (SyncState(sync_state).value,)
        with self.store._connection() as conn:
            row = conn.execute(sql, params).fetchone()
        return int(row["total"]) if row and row["total"] is not None else 0

    # ------------------------------------------------------------------
    def add(self, record: RecordT) -> RecordT:
        """Insert a new record, marked dirty."""

        record = replace(record, sync_state=SyncState.DIRTY)
        columns, values = self._encode(record)
        placeholders = ", ".join("?" for _ in columns)
        with self.store._connection() as conn:
            try:
                conn.execute(
                    f"INSERT INTO {self.name}({', '.join(columns)}) VALUES({placeholders})",
                    values,
                )
            except sqlite3.IntegrityError as err:
                raise DuplicateRecordError(f"{self.name} record {record.id} already exists") from err
            conn.commit()
        return record

    def update(self, record_id: str, **fields: Any) -> RecordT:
        """Merge ``fields`` into an existing record and mark it dirty."""

        if "id" in fields and fields["id"] != record_id:
            raise LocalStoreError("record ids cannot be reassigned")
        fields.pop("id", None)
        current = self.get(record_id)
        if current is None:
            raise RecordNotFoundError(f"{self.name} record {record_id} not found")
        fields["sync_state"] = SyncState.DIRTY
        updated = replace(current, **fields)
        self._write([updated])
        return updated

    def delete(self, record_id: str) -> None:
        with self.store._connection() as conn:
            conn.execute(f"DELETE FROM {self.name} WHERE id = ?", (record_id,))
            conn.commit()

    def bulk_put(self, records: Iterable[RecordT]) -> int:
        """Upsert ``records`` exactly as given, sync state included."""

        records = list(records)
        if records:
            self._write(records)
        return len(records)

    def mark_clean(self, records: Iterable[RecordT], updated_at: datetime) -> list[str]:
        """Stamp pushed ``records`` and mark them clean unless edited since read.

        Only ``sync_state`` and ``updated_at`` are written. A record edited after
        it was read keeps its payload and stays dirty but still takes the push
        timestamp, so the echo of the pushed row does not overwrite the edit.
        Deleted records are not recreated. Returns the ids marked clean.
        """

        stamp = format_timestamp(updated_at)
        marked: list[str] = []
        with self.store._connection() as conn:
            for record in records:
                row = conn.execute(f"SELECT * FROM {self.name} WHERE id = ?", (record.id,)).fetchone()
                if row is None:
                    continue
                if self._decode(row).payload() != record.payload():
                    _LOGGER.debug("Keeping %s %s dirty: edited during push", self.name, record.id[:8])
                    conn.execute(f"UPDATE {self.name} SET updated_at = ? WHERE id = ?", (stamp, record.id))
                    continue
                conn.execute(
                    f"UPDATE {self.name} SET sync_state = ?, updated_at = ? WHERE id = ?",
                    (SyncState.CLEAN.value, stamp, record.id),
                )
                marked.append(record.id)
            conn.commit()
        return marked

    # ------------------------------------------------------------------
    def _write(self, records: list[RecordT]) -> None:
        with self.store._connection() as conn:
            for record in records:
                columns, values = self._encode(record)
                placeholders = ", ".join("?" for _ in columns)
                conn.execute(
                    f"INSERT OR REPLACE INTO {self.name}({', '.join(columns)}) VALUES({placeholders})",
                    values,
                )
            conn.commit()

    def _encode(self, record: RecordT) -> tuple[list[str], tuple[Any, ...]]:
        columns = ["id", "payload", *self._local_columns, "sync_state", "updated_at"]
        values = (
            record.id,
            json.dumps(record.payload(), separators=(",", ":")),
            *(getattr(record, column) for column in self._local_columns),
            SyncState(record.sync_state).value,
            format_timestamp(record.updated_at),
        )
        return columns, values

    def _decode(self, row: sqlite3.Row) -> RecordT:
        try:
            payload = json.loads(row["payload"])
        except json.JSONDecodeError as err:
            raise LocalStoreError(f"corrupt {self.name} record {row['id']}") from err
        if not isinstance(payload, dict):
            _LOGGER.warning("Ignoring non-object payload for %s %s", self.name, row["id"])
            payload = {}
        local = {column: row[column] for column in self._local_columns}
        return self.descriptor.record_type.from_payload(
            row["id"],
            payload,
            sync_state=SyncState(row["sync_state"]),
            updated_at=parse_timestamp(row["updated_at"]),
            **local,
        )


__all__ = [
    "ConferenceStore",
    "DuplicateRecordError",
    "LocalStoreError",
    "LocalTable",
    "RecordNotFoundError",
]
