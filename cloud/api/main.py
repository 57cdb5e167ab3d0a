from __future__ import annotations

import secrets
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from conference_tracker.records import format_timestamp
from conference_tracker.tables import OWNER_KEY, SYNC_TABLES, UPDATED_AT_KEY

from .auth import Principal, principal_dependency

ACCESS_TOKEN_TTL = timedelta(hours=1)


class CloudState:
    """In-memory reference implementation of the cloud backend."""

    def __init__(self, users: Mapping[str, tuple[str, str]] | None = None) -> None:
        # email -> (password, user id)
        self.users: dict[str, tuple[str, str]] = {
            email.strip().lower(): entry for email, entry in (users or {}).items()
        }
        self.tables: dict[str, dict[str, dict[str, Any]]] = {descriptor.name: {} for descriptor in SYNC_TABLES}
        self.access_tokens: dict[str, tuple[Principal, datetime]] = {}
        self.refresh_tokens: dict[str, Principal] = {}

    # ------------------------------------------------------------------
    def issue_tokens(self, principal: Principal, *, now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.now(tz=UTC)
        access_token = secrets.token_urlsafe(24)
        refresh_token = secrets.token_urlsafe(24)
        expires_at = now + ACCESS_TOKEN_TTL
        self.access_tokens[access_token] = (principal, expires_at)
        self.refresh_tokens[refresh_token] = principal
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": int(ACCESS_TOKEN_TTL.total_seconds()),
            "expires_at": int(expires_at.timestamp()),
            "refresh_token": refresh_token,
            "user": {"id": principal.user_id, "email": principal.email},
        }

    def login(self, email: str, password: str) -> Principal | None:
        entry = self.users.get(email.strip().lower())
        if entry is None or not secrets.compare_digest(entry[0], password):
            return None
        return Principal(user_id=entry[1], email=email.strip().lower())

    def principal_for(self, access_token: str, *, now: datetime | None = None) -> Principal | None:
        entry = self.access_tokens.get(access_token)
        if entry is None:
            return None
        principal, expires_at = entry
        if expires_at <= (now or datetime.now(tz=UTC)):
            self.access_tokens.pop(access_token, None)
            return None
        return principal

    # ------------------------------------------------------------------
    def table(self, name: str) -> dict[str, dict[str, Any]]:
        rows = self.tables.get(name)
        if rows is None:
            raise HTTPException(status_code=404, detail={"error": "unknown_table", "table": name})
        return rows

    def upsert(self, name: str, rows: list[Mapping[str, Any]], principal: Principal) -> int:
        table = self.table(name)
        staged: list[dict[str, Any]] = []
        for row in rows:
            record_id = str(row.get("id") or "").strip()
            if not record_id:
                raise HTTPException(status_code=400, detail={"error": "missing_id"})
            owner = row.get(OWNER_KEY) or principal.user_id
            if owner != principal.user_id:
                raise HTTPException(status_code=403, detail={"error": "owner_mismatch", "id": record_id})
            existing = table.get(record_id)
            if existing is not None and existing.get(OWNER_KEY) != principal.user_id:
                raise HTTPException(status_code=403, detail={"error": "row_owned_by_other_user", "id": record_id})
            merged = dict(existing or {})
            merged.update(row)
            merged[OWNER_KEY] = principal.user_id
            merged.setdefault(UPDATED_AT_KEY, format_timestamp(datetime.now(tz=UTC)))
            staged.append(merged)
        for row in staged:
            table[row["id"]] = row
        return len(staged)

    def select_all(self, name: str, principal: Principal) -> list[dict[str, Any]]:
        return [dict(row) for row in self.table(name).values() if row.get(OWNER_KEY) == principal.user_id]


def create_app(users: Mapping[str, tuple[str, str]] | None = None) -> FastAPI:
    app = FastAPI()
    state = CloudState(users)
    app.state.state = state

    @app.post("/auth/v1/token")
    async def handle_token(
        grant_type: str = Query(...),
        payload: dict[str, Any] = Body(...),  # noqa: B008
    ) -> JSONResponse:
        if grant_type == "password":
            principal = state.login(str(payload.get("email") or ""), str(payload.get("password") or ""))
            if principal is None:
                return JSONResponse(
                    status_code=400,
                    content={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
        elif grant_type == "refresh_token":
            principal = state.refresh_tokens.pop(str(payload.get("refresh_token") or ""), None)
            if principal is None:
                return JSONResponse(
                    status_code=400,
                    content={"error": "invalid_grant", "error_description": "Invalid refresh token"},
                )
        else:
            return JSONResponse(
                status_code=400,
                content={"error": "unsupported_grant_type", "error_description": grant_type},
            )
        return JSONResponse(content=state.issue_tokens(principal))

    @app.post("/rest/v1/{table}")
    async def handle_upsert(
        table: str,
        rows: list[dict[str, Any]] | dict[str, Any] = Body(...),  # noqa: B008
        principal: Principal = Depends(principal_dependency),  # noqa: B008
    ) -> Response:
        batch = rows if isinstance(rows, list) else [rows]
        state.upsert(table, batch, principal)
        return Response(status_code=201)

    @app.get("/rest/v1/{table}")
    async def handle_select(
        table: str,
        principal: Principal = Depends(principal_dependency),  # noqa: B008
    ) -> list[dict[str, Any]]:
        return state.select_all(table, principal)

    return app


__all__ = ["CloudState", "create_app"]
