from __future__ import annotations

import secrets

from fastapi import HTTPException, status

from screener.core.config import settings


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def check_bearer_token(authorization: str | None) -> None:
    if settings.notify_auth_mode != "protected":
        return
    token = _bearer_token(authorization)
    expected = settings.notify_api_token or ""
    if token is None or not secrets.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="A valid bearer token is required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
