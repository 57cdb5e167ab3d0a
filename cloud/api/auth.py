from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, status


@dataclass(slots=True)
class Principal:
    user_id: str
    email: str | None = None


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


async def principal_dependency(
    request: Request,
    authorization: str | None = Header(None, alias="Authorization"),
) -> Principal:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "missing_token"},
        )
    principal = request.app.state.state.principal_for(token)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "invalid_token"},
        )
    return principal


__all__ = ["Principal", "principal_dependency"]
