"""Manage the sync orchestrator lifecycle for the application."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from aiohttp import ClientSession

from ..config import SettingsStore
from ..const import (
    CONF_CLOUD_ACCESS_TOKEN,
    CONF_CLOUD_ACCOUNT_EMAIL,
    CONF_CLOUD_API_KEY,
    CONF_CLOUD_BASE_URL,
    CONF_CLOUD_REFRESH_TOKEN,
    CONF_CLOUD_SYNC_ENABLED,
    CONF_CLOUD_SYNC_INTERVAL,
    CONF_CLOUD_TOKEN_EXPIRES_AT,
    CONF_CLOUD_USER_ID,
    CONF_LAST_SYNC_AT,
    DEFAULT_CLOUD_SYNC_INTERVAL,
)
from ..records import format_timestamp, parse_timestamp
from ..storage import ConferenceStore
from .auth import CloudAuthClient, CloudAuthTokens, TokenIdentityProvider
from .errors import CloudSyncError
from .events import SyncReport
from .orchestrator import SyncOrchestrator
from .remote_store import RemoteStore

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CloudSyncConfig:
    """Configuration required to talk to the cloud backend."""

    enabled: bool = False
    base_url: str = ""
    api_key: str = ""
    interval: int = DEFAULT_CLOUD_SYNC_INTERVAL
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: str | None = None
    user_id: str | None = None
    account_email: str | None = None

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> CloudSyncConfig:
        return cls(
            enabled=bool(options.get(CONF_CLOUD_SYNC_ENABLED, False)),
            base_url=str(options.get(CONF_CLOUD_BASE_URL) or "").strip(),
            api_key=str(options.get(CONF_CLOUD_API_KEY) or "").strip(),
            interval=int(options.get(CONF_CLOUD_SYNC_INTERVAL) or DEFAULT_CLOUD_SYNC_INTERVAL),
            access_token=options.get(CONF_CLOUD_ACCESS_TOKEN) or None,
            refresh_token=options.get(CONF_CLOUD_REFRESH_TOKEN) or None,
            token_expires_at=options.get(CONF_CLOUD_TOKEN_EXPIRES_AT) or None,
            user_id=options.get(CONF_CLOUD_USER_ID) or None,
            account_email=options.get(CONF_CLOUD_ACCOUNT_EMAIL) or None,
        )

    @property
    def ready(self) -> bool:
        return bool(self.enabled and self.base_url)

    def tokens(self) -> CloudAuthTokens | None:
        if not self.access_token or not self.user_id:
            return None
        return CloudAuthTokens(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=parse_timestamp(self.token_expires_at),
            user_id=self.user_id,
            account_email=self.account_email,
        )


def tokens_to_options(tokens: CloudAuthTokens | None) -> dict[str, Any]:
    """Return the settings changes that persist (or clear) ``tokens``."""

    if tokens is None:
        return {
            CONF_CLOUD_ACCESS_TOKEN: None,
            CONF_CLOUD_REFRESH_TOKEN: None,
            CONF_CLOUD_TOKEN_EXPIRES_AT: None,
            CONF_CLOUD_USER_ID: None,
            CONF_CLOUD_ACCOUNT_EMAIL: None,
        }
    return {
        CONF_CLOUD_ACCESS_TOKEN: tokens.access_token,
        CONF_CLOUD_REFRESH_TOKEN: tokens.refresh_token,
        CONF_CLOUD_TOKEN_EXPIRES_AT: format_timestamp(tokens.expires_at),
        CONF_CLOUD_USER_ID: tokens.user_id,
        CONF_CLOUD_ACCOUNT_EMAIL: tokens.account_email,
    }


class CloudSyncManager:
    """Own the HTTP session, identity and orchestrator used for cloud backup."""

    def __init__(
        self,
        store: ConferenceStore,
        settings: SettingsStore,
        *,
        session: ClientSession | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.config = CloudSyncConfig.from_options(settings.options)
        self._session = session
        self._owns_session = session is None
        self._auth_client: CloudAuthClient | None = None
        self.identity = TokenIdentityProvider(self.config.tokens())
        self.identity.register_token_listener(self._persist_tokens)
        self._orchestrator: SyncOrchestrator | None = None
        self._task: asyncio.Task | None = None
        self._last_report: SyncReport | None = None
        self._last_error: str | None = None

    # ------------------------------------------------------------------
    def _ensure_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    def _auth(self) -> CloudAuthClient:
        if not self.config.base_url:
            raise CloudSyncError("cloud base URL is not configured", reason="not_configured")
        if self._auth_client is None:
            self._auth_client = CloudAuthClient(self.config.base_url, self.config.api_key, self._ensure_session())
        return self._auth_client

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            if not self.config.ready:
                raise CloudSyncError("cloud sync is not fully configured", reason="not_configured")
            self.identity.client = self._auth()
            remote = RemoteStore(
                self._ensure_session(),
                self.config.base_url,
                api_key=self.config.api_key,
                access_token=lambda: self.identity.access_token,
            )
            self._orchestrator = SyncOrchestrator(self.store, remote, self.identity)
        return self._orchestrator

    def _apply_config(self, config: CloudSyncConfig) -> None:
        if (config.base_url, config.api_key) != (self.config.base_url, self.config.api_key):
            # Clients are bound to the endpoint they were built for.
            self._orchestrator = None
            self._auth_client = None
            self.identity.client = None
        self.config = config

    async def _persist_tokens(self, tokens: CloudAuthTokens | None) -> None:
        options = self.settings.update(**tokens_to_options(tokens))
        self._apply_config(CloudSyncConfig.from_options(options))

    # ------------------------------------------------------------------
    async def async_login(self, email: str, password: str) -> CloudAuthTokens:
        tokens = await self._auth().async_login(email, password)
        await self.identity.async_set_tokens(tokens)
        _LOGGER.info("Signed in as %s", tokens.account_email or tokens.user_id)
        return tokens

    async def async_logout(self) -> None:
        await self.identity.async_set_tokens(None)

    async def async_start(self) -> None:
        """Start the periodic sync loop when the cloud is configured."""

        self._apply_config(CloudSyncConfig.from_options(self.settings.options))
        if not self.config.ready:
            await self.async_stop()
            return
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run_forever(self.config.interval))

    async def async_stop(self) -> None:
        """Stop the sync loop and release the HTTP session."""

        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._orchestrator = None
        self._auth_client = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _run_forever(self, interval_seconds: int) -> None:
        while True:
            try:
                await self._sync_once()
            except asyncio.CancelledError:
                raise
            except Exception as err:  # pragma: no cover
                _LOGGER.exception("Unexpected sync error: %s", err)
            await asyncio.sleep(interval_seconds)

    async def _sync_once(self) -> SyncReport | None:
        try:
            report = await self.orchestrator.run_sync()
        except Exception as err:
            self._last_error = str(err)
            raise
        if report is not None:
            self._record(report)
        return report

    def _record(self, report: SyncReport) -> None:
        self._last_report = report
        self._last_error = None if report.ok else "partial sync"
        if report.finished_at is not None:
            self.settings.update(**{CONF_LAST_SYNC_AT: format_timestamp(report.finished_at)})

    async def async_sync_now(self) -> dict[str, Any]:
        """Run a single sync for the "Sync Now" action."""

        self._apply_config(CloudSyncConfig.from_options(self.settings.options))
        if not self.config.ready:
            raise CloudSyncError("cloud sync is not fully configured", reason="not_configured")
        try:
            report = await self._sync_once()
        except CloudSyncError:
            raise
        except Exception as err:
            raise CloudSyncError(str(err), reason="sync_failed") from err
        if report is None:
            raise CloudSyncError("sign in to sync", reason="not_authenticated")
        return {"report": report.to_dict(), "status": self.status()}

    # ------------------------------------------------------------------
    def status(self, now: datetime | None = None) -> dict[str, Any]:
        """Return runtime status information for the sync indicator."""

        now = now or datetime.now(tz=UTC)
        last_sync_raw = self.settings.options.get(CONF_LAST_SYNC_AT)
        last_sync = parse_timestamp(last_sync_raw)
        tokens = self.identity.tokens
        return {
            "enabled": self.config.enabled,
            "configured": self.config.ready,
            "signed_in": tokens is not None,
            "account_email": tokens.account_email if tokens else None,
            "token_expired": tokens.is_expired(now=now) if tokens else None,
            "pending_changes": self.store.pending_count(),
            "running": self._task is not None and not self._task.done(),
            "syncing": self._orchestrator is not None and self._orchestrator.in_progress,
            "last_sync_at": format_timestamp(last_sync),
            "last_sync_age_seconds": max((now - last_sync).total_seconds(), 0.0) if last_sync else None,
            "last_report": self._last_report.to_dict() if self._last_report else None,
            "last_error": self._last_error,
            "last_token_refresh_error": self.identity.last_refresh_error,
        }


__all__ = ["CloudSyncConfig", "CloudSyncManager", "tokens_to_options"]
