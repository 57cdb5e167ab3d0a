"""Bidirectional last-writer-wins sync between the local and remote stores."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from ..records import SyncState
from ..storage import ConferenceStore, LocalTable
from ..tables import SYNC_TABLES, TableDescriptor
from .auth import IdentityProvider, Principal
from .conflict import LastWriterWins, MergeDecision
from .errors import RemoteStoreError
from .events import SyncPhase, SyncProgressEvent, SyncReport, TableSyncResult
from .remote_store import RemoteStoreProtocol

_LOGGER = logging.getLogger(__name__)

ProgressListener = Callable[[SyncProgressEvent], Awaitable[None] | None]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SyncOrchestrator:
    """Reconcile every sync table between the local and remote stores.

    Each call to :meth:`run_sync` pushes dirty local records and then pulls
    the remote table, one table at a time in the order of ``tables``. Remote
    failures are contained to the table and phase they occur in; local store
    failures propagate to the caller.
    """

    def __init__(
        self,
        store: ConferenceStore,
        remote: RemoteStoreProtocol,
        identity: IdentityProvider,
        *,
        tables: Iterable[TableDescriptor[Any]] = SYNC_TABLES,
        policy: LastWriterWins | None = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.identity = identity
        self.tables = tuple(tables)
        self.policy = policy or LastWriterWins()
        self.clock = clock
        self.logger = logger or _LOGGER
        self._listeners: list[ProgressListener] = []
        self._inflight: asyncio.Task[SyncReport | None] | None = None

    def register_listener(self, listener: ProgressListener) -> Callable[[], None]:
        """Subscribe to progress events; returns an unsubscribe callback."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    @property
    def in_progress(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ------------------------------------------------------------------
    async def run_sync(self) -> SyncReport | None:
        """Run one sync pass, or join the pass already in flight.

        Returns ``None`` without touching either store when nobody is signed
        in.
        """

        if self._inflight is not None and not self._inflight.done():
            self.logger.debug("Sync already running; waiting for it to finish")
            return await asyncio.shield(self._inflight)

        task = asyncio.ensure_future(self._run())
        self._inflight = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None

    async def _run(self) -> SyncReport | None:
        principal = await self.identity.current_user()
        if principal is None:
            self.logger.debug("Skipping sync: no authenticated user")
            return None

        report = SyncReport(owner_id=principal.user_id, started_at=self.clock())
        self.logger.info("Starting sync for %s", principal.user_id)
        await self._emit(SyncProgressEvent(SyncPhase.STARTED))

        for descriptor in self.tables:
            result = TableSyncResult(table=descriptor.name)
            report.tables.append(result)
            table = self.store.table(descriptor)
            await self._push(table, principal, result)
            await self._pull(table, result)

        report.finished_at = self.clock()
        self.logger.info(
            "Sync complete: pushed %d, adopted %d%s",
            report.pushed,
            report.adopted,
            "" if report.ok else " (with errors)",
        )
        await self._emit(SyncProgressEvent(SyncPhase.FINISHED, count=report.pushed + report.adopted))
        return report

    async def _push(self, table: LocalTable[Any], principal: Principal, result: TableSyncResult) -> None:
        dirty = table.query(sync_state=SyncState.DIRTY)
        if not dirty:
            return

        pushed_at = self.clock()
        rows = [
            table.descriptor.to_wire(record, owner_id=principal.user_id, updated_at=pushed_at) for record in dirty
        ]
        self.logger.info("Pushing %d %s", len(rows), table.name)
        try:
            await self.remote.upsert(table.name, rows)
        except RemoteStoreError as err:
            self.logger.warning("Error pushing %s: %s", table.name, err)
            result.push_error = str(err)
            await self._emit(SyncProgressEvent(SyncPhase.PUSH_FAILED, table.name, len(rows), str(err)))
            return

        marked = table.mark_clean(dirty, pushed_at)
        if len(marked) < len(dirty):
            self.logger.info("%d %s changed during push; left dirty", len(dirty) - len(marked), table.name)
        result.pushed = len(dirty)
        await self._emit(SyncProgressEvent(SyncPhase.PUSH, table.name, len(dirty)))

    async def _pull(self, table: LocalTable[Any], result: TableSyncResult) -> None:
        try:
            remote_rows = await self.remote.select_all(table.name)
        except RemoteStoreError as err:
            self.logger.warning("Error pulling %s: %s", table.name, err)
            result.pull_error = str(err)
            await self._emit(SyncProgressEvent(SyncPhase.PULL_FAILED, table.name, error=str(err)))
            return

        result.received = len(remote_rows)
        if not remote_rows:
            return
        self.logger.info("Pulling %d %s", len(remote_rows), table.name)
        await self._emit(SyncProgressEvent(SyncPhase.PULL, table.name, len(remote_rows)))

        local_by_id = {record.id: record for record in table.all()}
        staged = []
        for row in remote_rows:
            if not row.get("id"):
                self.logger.warning("Ignoring remote %s row without id", table.name)
                result.skipped += 1
                continue
            remote = table.descriptor.from_wire(row)
            local = local_by_id.get(remote.id)
            decision = self.policy.decide(local, remote)
            if decision is MergeDecision.SKIP:
                self.logger.debug("Skipping %s %s (local is newer or same)", table.name, remote.id[:8])
                result.skipped += 1
                continue
            self.logger.debug("Adopting %s %s (%s)", table.name, remote.id[:8], decision.value)
            staged.append(self.policy.adopt(table.descriptor, local, remote))

        if staged:
            table.bulk_put(staged)
            result.adopted = len(staged)
            self.logger.info("Updated %d %s", len(staged), table.name)
            await self._emit(SyncProgressEvent(SyncPhase.ADOPTED, table.name, len(staged)))

    async def _emit(self, event: SyncProgressEvent) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as err:  # pragma: no cover
                self.logger.debug("Progress listener raised error: %s", err, exc_info=True)


__all__ = ["ProgressListener", "SyncOrchestrator"]
