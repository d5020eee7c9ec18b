"""API key creation and validation for BookOps.

API keys use a ``bk_`` prefix followed by a URL-safe random token.  Only the
SHA-256 hash of the raw key is stored in the database — the raw key is shown
exactly ONCE to the caller at creation time and cannot be recovered afterward.

Key lifecycle:
1. ``create_api_key()`` — generates key, inserts ApiKey row, returns raw key once.
2. ``validate_api_key()`` — hashes the presented key, looks up by hash, checks
   it is active, returns the caller identity dict or None.
3. ``increment_request_count()`` — updates usage counter and last_used_at.
"""

from __future__ import annotations

import datetime
import hashlib
import secrets
import uuid

from sqlalchemy import select, update

from bookops.db.models import ApiKey, UserRole
from bookops.db.session import get_session


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key() -> tuple[str, str, str]:
    """Generate a new BookOps API key and return its components.

    Returns:
        A ``(raw_key, key_prefix, key_hash)`` triple where:
        - ``raw_key``    — full key shown once to the user (e.g. ``"bk_abc..."``).
        - ``key_prefix`` — first 8 characters for safe display.
        - ``key_hash``   — SHA-256 hex digest used for database lookup.
    """
    key = "bk_" + secrets.token_urlsafe(32)
    return key, key[:8], hash_api_key(key)


async def create_api_key(
    user_id: str,
    role: UserRole,
    region: str | None = None,
) -> tuple[str, str]:
    """Create a new API key for a caller and return the raw key once.

    Returns:
        ``(raw_key, api_key_id)`` — the raw key shown once and the UUID of the
        newly created ApiKey row.
    """
    raw_key, key_prefix, key_hash = generate_api_key()

    async with get_session() as session:
        api_key = ApiKey(
            id=uuid.uuid4(),
            key_prefix=key_prefix,
            key_hash=key_hash,
            user_id=user_id,
            role=role,
            region=region,
            request_count=0,
            is_active=True,
        )
        session.add(api_key)
        await session.commit()
        api_key_id = str(api_key.id)

    return raw_key, api_key_id


async def validate_api_key(raw_key: str) -> dict | None:
    """Validate a raw API key and return the caller identity if it is active.

    Returns:
        A dict with ``user_id``, ``role``, ``region`` and ``api_key_id`` if
        valid and active; ``None`` if the key is unknown or revoked.
    """
    async with get_session() as session:
        result = await session.execute(
            select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key))
        )
        api_key = result.scalar_one_or_none()

    if api_key is None or not api_key.is_active:
        return None

    return {
        "user_id": api_key.user_id,
        "role": api_key.role.value,
        "region": api_key.region,
        "api_key_id": str(api_key.id),
    }


async def increment_request_count(api_key_id: str) -> None:
    """Increment the request counter and update last_used_at for a key."""
    now = datetime.datetime.now(datetime.timezone.utc)

    async with get_session() as session:
        await session.execute(
            update(ApiKey)
            .where(ApiKey.id == uuid.UUID(api_key_id))
            .values(
                request_count=ApiKey.request_count + 1,
                last_used_at=now,
            )
        )
        await session.commit()
