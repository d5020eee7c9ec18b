"""Bearer token authentication for the BookOps API.

Design decisions:
- JWT tokens carry ``sub`` (caller id), ``role`` and ``region`` claims
- bk_-prefixed tokens are API keys routed through validate_api_key()
- The caller's identity is ALWAYS taken from the token and passed down
  explicitly as an AuthContext; nothing reads session state from globals
- decode_token() raises ValueError for invalid/missing tokens so callers can
  map it to a 401 response
- create_token() is provided for testing and CLI use only

Usage:
    from bookops.server.auth import decode_token_async

    ctx = await decode_token_async(token)
    # Use ctx.user_id, ctx.role, ctx.region
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from jose import JWTError, jwt

from bookops.config import settings
from bookops.db.models import UserRole

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "bk_"


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, passed explicitly into detection and resolution.

    Attributes:
        user_id: Caller identifier — recorded as ``resolved_by`` on audit rows.
        role:    Management role; decides whether the caller sees every region.
        region:  The caller's home region. None for callers without one.
    """

    user_id: str
    role: UserRole
    region: str | None = field(default=None)


def _parse_role(value) -> UserRole:
    try:
        return UserRole(str(value).upper())
    except ValueError as exc:
        raise ValueError(f"Unknown role: {value!r}") from exc


def decode_token(token: str) -> AuthContext:
    """Decode a JWT and return an AuthContext.

    JWT-only entry point — does NOT handle bk_-prefixed API keys. Use
    decode_token_async() to support both.

    Raises:
        ValueError: If the token is invalid, expired, or missing required claims.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError(f"Invalid token: {exc}") from exc

    user_id = payload.get("sub")
    role = payload.get("role")

    if not user_id:
        raise ValueError("Token missing required claim: sub")
    if not role:
        raise ValueError("Token missing required claim: role")

    return AuthContext(
        user_id=str(user_id),
        role=_parse_role(role),
        region=payload.get("region") or None,
    )


async def decode_token_async(token: str) -> AuthContext:
    """Decode a JWT or validate a bk_-prefixed API key.

    Raises:
        ValueError: If the token is invalid or the API key is inactive/not found.
    """
    if token.startswith(API_KEY_PREFIX):
        from bookops.security.api_key import (  # noqa: PLC0415
            increment_request_count,
            validate_api_key,
        )

        result = await validate_api_key(raw_key=token)
        if result is None:
            raise ValueError("Invalid or inactive API key")

        # Usage counter failures never block auth
        try:
            await increment_request_count(result["api_key_id"])
        except Exception:
            logger.warning(
                "Failed to increment request count for key %s",
                result["api_key_id"],
                exc_info=True,
            )

        return AuthContext(
            user_id=result["user_id"],
            role=_parse_role(result["role"]),
            region=result["region"],
        )

    return decode_token(token)


def create_token(user_id: str, role: UserRole | str, region: str | None = None) -> str:
    """Create a signed JWT with sub, role and region claims.

    Utility for tests and the CLI. Production tokens should be issued by the
    identity provider.
    """
    role_value = role.value if isinstance(role, UserRole) else str(role).upper()
    return jwt.encode(
        {"sub": user_id, "role": role_value, "region": region},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
