"""PostgREST-style client for the remote backing store."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from ..const import REQUEST_TIMEOUT_SECONDS
from .errors import RemoteStoreError

_LOGGER = logging.getLogger(__name__)


class RemoteStoreProtocol(Protocol):
    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None: ...

    async def select_all(self, table: str) -> list[dict[str, Any]]: ...


class RemoteStore:
    """Owner-scoped table access over the cloud REST API.

    Rows are scoped to the caller by the backend's access policy, which keys
    off the bearer token returned by ``access_token``.
    """

    def __init__(
        self,
        session: ClientSession,
        base_url: str,
        *,
        api_key: str = "",
        access_token: Callable[[], str | None] | str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._access_token = access_token
        self.timeout = ClientTimeout(total=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self._access_token() if callable(self._access_token) else self._access_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        """Insert or replace ``rows`` by id in a single request."""

        if not rows:
            return
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        headers["Prefer"] = "resolution=merge-duplicates,return=minimal"
        body = json.dumps([dict(row) for row in rows], separators=(",", ":"))
        try:
            async with self.session.post(
                self._table_url(table),
                params={"on_conflict": "id"},
                data=body,
                headers=headers,
                timeout=self.timeout,
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise RemoteStoreError(
                        f"upsert {table} failed: {resp.status} {text}",
                        table=table,
                        status=resp.status,
                    )
        except (ClientError, asyncio.TimeoutError) as err:
            raise RemoteStoreError(f"upsert {table} failed: {err}", table=table) from err
        _LOGGER.debug("Upserted %d rows into remote %s", len(rows), table)

    async def select_all(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table`` visible to the signed-in owner."""

        try:
            async with self.session.get(
                self._table_url(table),
                params={"select": "*"},
                headers=self._headers(),
                timeout=self.timeout,
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise RemoteStoreError(
                        f"select {table} failed: {resp.status} {text}",
                        table=table,
                        status=resp.status,
                    )
                payload = await resp.json(content_type=None)
        except (ClientError, asyncio.TimeoutError) as err:
            raise RemoteStoreError(f"select {table} failed: {err}", table=table) from err
        except json.JSONDecodeError as err:
            raise RemoteStoreError(f"select {table} returned invalid JSON", table=table) from err

        if payload is None:
            return []
        if not isinstance(payload, list):
            raise RemoteStoreError(f"select {table} returned {type(payload).__name__}, expected list", table=table)
        return [dict(row) for row in payload if isinstance(row, Mapping)]


__all__ = ["RemoteStore", "RemoteStoreProtocol"]
