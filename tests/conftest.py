from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from conference_tracker.cloudsync import Principal, RemoteStoreError, SyncOrchestrator
from conference_tracker.storage import ConferenceStore


class FakeRemoteStore:
    """In-memory remote store with switchable failures per table and phase."""

    def __init__(self, owner_id: str = "user-1") -> None:
        self.owner_id = owner_id
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_upsert: set[str] = set()
        self.fail_select: set[str] = set()

    def seed(self, table: str, *rows: Mapping[str, Any]) -> None:
        bucket = self.tables.setdefault(table, {})
        for row in rows:
            bucket[row["id"]] = {"user_id": self.owner_id, **copy.deepcopy(dict(row))}

    def rows(self, table: str) -> dict[str, dict[str, Any]]:
        return self.tables.get(table, {})

    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        self.calls.append(("upsert", table))
        if table in self.fail_upsert:
            raise RemoteStoreError(f"upsert {table} failed: 503", table=table, status=503)
        bucket = self.tables.setdefault(table, {})
        for row in rows:
            merged = dict(bucket.get(row["id"], {}))
            merged.update(copy.deepcopy(dict(row)))
            bucket[row["id"]] = merged

    async def select_all(self, table: str) -> list[dict[str, Any]]:
        self.calls.append(("select", table))
        if table in self.fail_select:
            raise RemoteStoreError(f"select {table} failed: 503", table=table, status=503)
        return [copy.deepcopy(row) for row in self.tables.get(table, {}).values()]


class StaticIdentity:
    def __init__(self, principal: Principal | None) -> None:
        self.principal = principal
        self.calls = 0

    async def current_user(self) -> Principal | None:
        self.calls += 1
        return self.principal


class FixedClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store(tmp_path: Path) -> ConferenceStore:
    return ConferenceStore(tmp_path / "conference.db")


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id="user-1", email="ada@example.com")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 6, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def make_orchestrator(store: ConferenceStore, remote: FakeRemoteStore, principal: Principal, clock: FixedClock):
    def _factory(*, signed_in: bool = True, **kwargs: Any) -> SyncOrchestrator:
        identity = StaticIdentity(principal if signed_in else None)
        kwargs.setdefault("clock", clock)
        return SyncOrchestrator(store, remote, identity, **kwargs)

    return _factory
