from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..records import format_timestamp


class SyncPhase(str, Enum):
    """Progress markers emitted while a sync runs."""

    STARTED = "started"
    PUSH = "push"
    PUSH_FAILED = "push_failed"
    PULL = "pull"
    PULL_FAILED = "pull_failed"
    ADOPTED = "adopted"
    FINISHED = "finished"


@dataclass(slots=True)
class SyncProgressEvent:
    """Diagnostic event describing one step of a sync run."""

    phase: SyncPhase
    table: str | None = None
    count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"phase": self.phase.value, "count": self.count}
        if self.table is not None:
            payload["table"] = self.table
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class TableSyncResult:
    """Per-table outcome of one sync run."""

    table: str
    pushed: int = 0
    received: int = 0
    adopted: int = 0
    skipped: int = 0
    push_error: str | None = None
    pull_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.push_error is None and self.pull_error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "pushed": self.pushed,
            "received": self.received,
            "adopted": self.adopted,
            "skipped": self.skipped,
            "push_error": self.push_error,
            "pull_error": self.pull_error,
        }


@dataclass(slots=True)
class SyncReport:
    """Summary of a full sync run across every table."""

    owner_id: str
    started_at: datetime
    finished_at: datetime | None = None
    tables: list[TableSyncResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.tables)

    @property
    def pushed(self) -> int:
        return sum(result.pushed for result in self.tables)

    @property
    def adopted(self) -> int:
        return sum(result.adopted for result in self.tables)

    def table(self, name: str) -> TableSyncResult | None:
        return next((result for result in self.tables if result.table == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "started_at": format_timestamp(self.started_at),
            "finished_at": format_timestamp(self.finished_at),
            "ok": self.ok,
            "pushed": self.pushed,
            "adopted": self.adopted,
            "tables": [result.to_dict() for result in self.tables],
        }


__all__ = ["SyncPhase", "SyncProgressEvent", "SyncReport", "TableSyncResult"]
