"""Caller authentication dependency for the BookOps REST API.

The ``require_auth`` FastAPI dependency accepts either:
1. ``Authorization: Bearer <token>`` — a JWT or a bk_-prefixed API key, or
2. ``X-API-Key: <bk_key>``.

It returns the AuthContext that every downstream clash operation receives
explicitly.  Route handlers never read identity from anywhere else, which
keeps them trivially testable by overriding this one dependency.
"""

from __future__ import annotations

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from bookops.server.auth import AuthContext, decode_token_async

# auto_error=False so a missing header yields our own 401 instead of a 403
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
BEARER = HTTPBearer(auto_error=False)


async def require_auth(
    credentials: HTTPAuthorizationCredentials | None = Security(BEARER),
    api_key: str | None = Security(API_KEY_HEADER),
) -> AuthContext:
    """Resolve the caller's AuthContext or raise 401."""
    token = credentials.credentials if credentials is not None else api_key
    if not token:
        raise HTTPException(status_code=401, detail="Missing credentials")

    try:
        return await decode_token_async(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
