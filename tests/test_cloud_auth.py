from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any, cast
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import ClientSession

from conference_tracker import SESSIONS, Session
from conference_tracker.cloudsync import (
    CloudAuthClient,
    CloudAuthError,
    CloudAuthTokens,
    Principal,
    SyncOrchestrator,
    TokenIdentityProvider,
)


class _Response:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._body = body

    async def __aenter__(self) -> _Response:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def json(self, content_type: str | None = None) -> Any:
        raw = self._body if isinstance(self._body, str) else json.dumps(self._body)
        return json.loads(raw)


def _session(status: int, body: Any) -> MagicMock:
    session = MagicMock()
    session.post.return_value = _Response(status, body)
    return session


def _tokens(*, expires_at: datetime | None, refresh: str | None = "refresh-1") -> CloudAuthTokens:
    return CloudAuthTokens(
        access_token="access-1",
        refresh_token=refresh,
        expires_at=expires_at,
        user_id="user-1",
        account_email="ada@example.com",
    )


def test_tokens_parse_numeric_expiry() -> None:
    tokens = CloudAuthTokens.from_payload(
        {
            "access_token": "abc",
            "refresh_token": "def",
            "expires_at": 1_750_000_000,
            "user": {"id": "user-1", "email": "ada@example.com"},
        }
    )
    assert tokens.expires_at == datetime.fromtimestamp(1_750_000_000, tz=UTC)
    assert tokens.principal() == Principal(user_id="user-1", email="ada@example.com")


def test_tokens_parse_expires_in_and_iso() -> None:
    now = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
    relative = CloudAuthTokens.from_payload(
        {"access_token": "abc", "expires_in": 3600, "user_id": "user-1"},
        now=now,
    )
    assert relative.expires_at == now + timedelta(hours=1)
    assert relative.refresh_token is None

    absolute = CloudAuthTokens.from_payload(
        {"access_token": "abc", "expires_at": "2025-06-01T13:00:00Z", "user": {"id": "user-1"}}
    )
    assert absolute.expires_at == now + timedelta(hours=1)


@pytest.mark.parametrize(
    "payload",
    [
        {"user": {"id": "user-1"}},
        {"access_token": "abc"},
        {"access_token": "abc", "user": {"id": "u"}, "expires_at": "soon"},
        {"access_token": "abc", "user": {"id": "u"}, "expires_in": "later"},
    ],
)
def test_tokens_reject_malformed_payload(payload: dict[str, Any]) -> None:
    with pytest.raises(CloudAuthError):
        CloudAuthTokens.from_payload(payload)


def test_tokens_expiry_threshold() -> None:
    now = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
    tokens = _tokens(expires_at=now + timedelta(seconds=30))
    assert not tokens.is_expired(now=now)
    assert tokens.is_expired(now=now, threshold_seconds=60)
    assert not _tokens(expires_at=None).is_expired(now=now)


@pytest.mark.asyncio
async def test_client_login_posts_password_grant() -> None:
    session = _session(
        200,
        {"access_token": "abc", "refresh_token": "def", "expires_in": 3600, "user": {"id": "user-1"}},
    )
    client = CloudAuthClient("https://cloud.example/", "anon", session=cast(ClientSession, session))

    tokens = await client.async_login("ada@example.com", "secret")

    assert tokens.access_token == "abc"
    args, kwargs = session.post.call_args
    assert args[0] == "https://cloud.example/auth/v1/token"
    assert kwargs["params"] == {"grant_type": "password"}
    assert kwargs["json"] == {"email": "ada@example.com", "password": "secret"}
    assert kwargs["headers"] == {"apikey": "anon"}
    await client.async_close()
    session.close.assert_not_called()


@pytest.mark.asyncio
async def test_client_surfaces_error_description() -> None:
    session = _session(400, {"error": "invalid_grant", "error_description": "Invalid login credentials"})
    client = CloudAuthClient("https://cloud.example", session=cast(ClientSession, session))

    with pytest.raises(CloudAuthError, match="Invalid login credentials"):
        await client.async_refresh("stale")

    assert session.post.call_args.kwargs["params"] == {"grant_type": "refresh_token"}


@pytest.mark.asyncio
async def test_identity_without_tokens_is_signed_out() -> None:
    assert await TokenIdentityProvider().current_user() is None


@pytest.mark.asyncio
async def test_identity_returns_principal_for_valid_token() -> None:
    provider = TokenIdentityProvider(_tokens(expires_at=datetime.now(tz=UTC) + timedelta(hours=1)))
    principal = await provider.current_user()
    assert principal == Principal(user_id="user-1", email="ada@example.com")
    assert provider.access_token == "access-1"


@pytest.mark.asyncio
async def test_identity_refreshes_expired_token_and_notifies() -> None:
    refreshed = CloudAuthTokens(
        access_token="access-2",
        refresh_token="refresh-2",
        expires_at=datetime.now(tz=UTC) + timedelta(hours=1),
        user_id="user-1",
    )
    client = MagicMock()
    client.async_refresh = AsyncMock(return_value=refreshed)
    provider = TokenIdentityProvider(_tokens(expires_at=datetime.now(tz=UTC) - timedelta(minutes=1)), client=client)
    seen: list[CloudAuthTokens | None] = []
    provider.register_token_listener(seen.append)

    principal = await provider.current_user()

    assert principal == Principal(user_id="user-1")
    client.async_refresh.assert_awaited_once_with("refresh-1")
    assert provider.tokens is refreshed
    assert seen == [refreshed]


@pytest.mark.asyncio
async def test_identity_refresh_failure_reports_signed_out() -> None:
    client = MagicMock()
    client.async_refresh = AsyncMock(side_effect=CloudAuthError("refresh revoked"))
    provider = TokenIdentityProvider(_tokens(expires_at=datetime.now(tz=UTC) - timedelta(minutes=1)), client=client)

    assert await provider.current_user() is None
    assert provider.last_refresh_error == "refresh revoked"


@pytest.mark.asyncio
async def test_identity_expired_without_refresh_token() -> None:
    client = MagicMock()
    client.async_refresh = AsyncMock()
    provider = TokenIdentityProvider(
        _tokens(expires_at=datetime.now(tz=UTC) - timedelta(minutes=1), refresh=None), client=client
    )

    assert await provider.current_user() is None
    client.async_refresh.assert_not_awaited()


@pytest.mark.asyncio
async def test_client_rejects_non_json_error_page() -> None:
    session = _session(502, "<html>Bad Gateway</html>")
    client = CloudAuthClient("https://cloud.example", session=cast(ClientSession, session))

    with pytest.raises(CloudAuthError, match="HTTP 502"):
        await client.async_refresh("refresh-1")


@pytest.mark.asyncio
async def test_identity_gateway_error_during_refresh_skips_sync(store, remote) -> None:
    session = _session(502, "<html>Bad Gateway</html>")
    client = CloudAuthClient("https://cloud.example", session=cast(ClientSession, session))
    provider = TokenIdentityProvider(_tokens(expires_at=datetime.now(tz=UTC) - timedelta(minutes=1)), client=client)
    store.table(SESSIONS).add(Session(id="a", title="Keynote"))

    report = await SyncOrchestrator(store, remote, provider).run_sync()

    assert report is None
    assert remote.calls == []
    assert provider.last_refresh_error == "refresh_token failed: HTTP 502"
