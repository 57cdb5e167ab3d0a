from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..records import EPOCH, SyncState
from ..tables import RecordT, TableDescriptor


class MergeDecision(str, Enum):
    """Outcome of comparing a remote row with the local copy."""

    INSERT = "insert"
    OVERWRITE = "overwrite"
    SKIP = "skip"


@dataclass(slots=True)
class LastWriterWins:
    """Timestamp based conflict policy for whole records.

    The remote copy wins only when its ``updated_at`` is strictly newer than
    the local one; ties keep the local record. A missing local timestamp
    counts as the epoch.
    """

    preserve_local_fields: bool = True

    def decide(self, local: Any | None, remote: Any) -> MergeDecision:
        if local is None:
            return MergeDecision.INSERT
        if _timestamp(remote.updated_at) > _timestamp(local.updated_at):
            return MergeDecision.OVERWRITE
        return MergeDecision.SKIP

    def adopt(self, descriptor: TableDescriptor[RecordT], local: RecordT | None, remote: RecordT) -> RecordT:
        """Return the record to store locally for an adopted remote row."""

        adopted = remote
        if local is not None and self.preserve_local_fields:
            adopted = descriptor.with_local_fields(adopted, local)
        adopted.sync_state = SyncState.CLEAN
        return adopted


def _timestamp(value: datetime | None) -> datetime:
    return value if value is not None else EPOCH


__all__ = ["LastWriterWins", "MergeDecision"]
