"""Helpers for authenticating against the conference tracker cloud backend."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from ..const import REQUEST_TIMEOUT_SECONDS

_LOGGER = logging.getLogger(__name__)


class CloudAuthError(RuntimeError):
    """Raised when the cloud API rejects credentials or returns malformed data."""


@dataclass(slots=True, frozen=True)
class Principal:
    """The authenticated owner that scopes remote rows."""

    user_id: str
    email: str | None = None


@dataclass(slots=True)
class CloudAuthTokens:
    """Normalised tokens returned by the cloud authentication endpoints."""

    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    user_id: str
    account_email: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, now: datetime | None = None) -> CloudAuthTokens:
        """Create a :class:`CloudAuthTokens` from an API JSON payload."""

        access_token = str(payload.get("access_token") or "").strip()
        if not access_token:
            raise CloudAuthError("access_token missing from response")

        user = payload.get("user")
        user = user if isinstance(user, Mapping) else {}
        user_id = str(user.get("id") or payload.get("user_id") or "").strip()
        if not user_id:
            raise CloudAuthError("user id missing from response")

        refresh = payload.get("refresh_token")
        refresh_token = str(refresh).strip() if refresh else None

        expires_at: datetime | None = None
        expiry = payload.get("expires_at")
        expires_in = payload.get("expires_in")
        if isinstance(expiry, int | float) and not isinstance(expiry, bool):
            # GoTrue reports absolute expiry in epoch seconds.
            expires_at = datetime.fromtimestamp(float(expiry), tz=UTC)
        elif isinstance(expiry, str) and expiry.strip():
            text = expiry.strip()
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                try:
                    expires_at = datetime.fromtimestamp(float(text), tz=UTC)
                except (TypeError, ValueError) as err:
                    raise CloudAuthError(f"invalid expiry timestamp: {expiry}") from err
            else:
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=UTC)
                expires_at = parsed.astimezone(UTC)
        elif expires_in is not None:
            try:
                seconds = float(expires_in)
            except (TypeError, ValueError) as err:
                raise CloudAuthError(f"invalid expires_in: {expires_in}") from err
            now = now or datetime.now(tz=UTC)
            expires_at = now + timedelta(seconds=seconds)

        email = user.get("email") or payload.get("email") or payload.get("account_email")
        account_email = str(email).strip() if email else None

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user_id=user_id,
            account_email=account_email,
        )

    def is_expired(self, *, now: datetime | None = None, threshold_seconds: int = 0) -> bool:
        """Return ``True`` if the access token has expired or is close to expiry."""

        if self.expires_at is None:
            return False
        now = now or datetime.now(tz=UTC)
        return (self.expires_at - now).total_seconds() <= threshold_seconds

    def principal(self) -> Principal:
        return Principal(user_id=self.user_id, email=self.account_email)


class CloudAuthClient:
    """Wrapper around the token endpoint of the cloud backend."""

    def __init__(self, base_url: str, api_key: str = "", session: ClientSession | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._session = session or ClientSession()
        self._owns_session = session is None

    async def async_close(self) -> None:
        if self._owns_session and not self._session.closed:
            await self._session.close()

    async def async_login(self, email: str, password: str) -> CloudAuthTokens:
        """Authenticate with email/password credentials."""

        return await self._token_request("password", {"email": email, "password": password})

    async def async_refresh(self, refresh_token: str) -> CloudAuthTokens:
        """Exchange a refresh token for a new access token."""

        return await self._token_request("refresh_token", {"refresh_token": refresh_token})

    async def _token_request(self, grant_type: str, payload: Mapping[str, Any]) -> CloudAuthTokens:
        headers = {"apikey": self._api_key} if self._api_key else {}
        try:
            async with self._session.post(
                f"{self._base_url}/auth/v1/token",
                params={"grant_type": grant_type},
                json=dict(payload),
                headers=headers,
                timeout=ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
            ) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError as err:
                    raise CloudAuthError(f"{grant_type} failed: HTTP {resp.status}") from err
                if resp.status >= 400:
                    message = None
                    if isinstance(data, Mapping):
                        message = data.get("error_description") or data.get("msg") or data.get("detail")
                    raise CloudAuthError(str(message) if message else f"{grant_type} failed: HTTP {resp.status}")
        except (ClientError, asyncio.TimeoutError) as err:
            raise CloudAuthError(f"{grant_type} request failed: {err}") from err

        if not isinstance(data, Mapping):
            raise CloudAuthError("token response is not a JSON object")
        return CloudAuthTokens.from_payload(data)


class IdentityProvider(Protocol):
    async def current_user(self) -> Principal | None: ...


TokenListener = Callable[[CloudAuthTokens | None], Awaitable[None] | None]


class TokenIdentityProvider:
    """Expose the signed-in user from stored tokens, refreshing when expired."""

    def __init__(
        self,
        tokens: CloudAuthTokens | None = None,
        *,
        client: CloudAuthClient | None = None,
        refresh_threshold_seconds: int = 60,
    ) -> None:
        self.tokens = tokens
        self.client = client
        self.refresh_threshold_seconds = refresh_threshold_seconds
        self.last_refresh_error: str | None = None
        self._listeners: list[TokenListener] = []
        self._refresh_lock = asyncio.Lock()

    def register_token_listener(self, listener: TokenListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    async def async_set_tokens(self, tokens: CloudAuthTokens | None) -> None:
        self.tokens = tokens
        await self._notify(tokens)

    @property
    def access_token(self) -> str | None:
        return self.tokens.access_token if self.tokens else None

    async def current_user(self) -> Principal | None:
        tokens = self.tokens
        if tokens is None:
            return None
        if not tokens.is_expired(threshold_seconds=self.refresh_threshold_seconds):
            return tokens.principal()
        if not tokens.refresh_token or self.client is None:
            _LOGGER.debug("Access token expired and cannot be refreshed")
            return None
        async with self._refresh_lock:
            if self.tokens is not tokens:
                return self.tokens.principal() if self.tokens else None
            try:
                refreshed = await self.client.async_refresh(tokens.refresh_token)
            except CloudAuthError as err:
                _LOGGER.warning("Token refresh failed: %s", err)
                self.last_refresh_error = str(err)
                return None
            self.last_refresh_error = None
            await self.async_set_tokens(refreshed)
        return refreshed.principal()

    async def _notify(self, tokens: CloudAuthTokens | None) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(tokens)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as err:  # pragma: no cover
                _LOGGER.debug("Token listener raised error: %s", err, exc_info=True)


__all__ = [
    "CloudAuthClient",
    "CloudAuthError",
    "CloudAuthTokens",
    "IdentityProvider",
    "Principal",
    "TokenIdentityProvider",
]
