"""Redis cache in front of the user_sessions table.

Keys are `session:{token}` holding the owning user id, with a TTL equal to
the remaining session lifetime. The database stays the source of truth;
a cache hit only saves the session lookup.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ticketzetu.models.base import utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "session:"


def session_key(token: str) -> str:
    return f"{KEY_PREFIX}{token}"


class SessionCache:
    """Thin wrapper over an async Redis client."""

    def __init__(self, redis: object) -> None:
        self._redis = redis

    async def store(self, token: str, user_id: str, expires_at: datetime) -> None:
        """Cache a session until it expires; errors are logged, not raised."""
        ttl = int((expires_at - utcnow()).total_seconds())
        if ttl <= 0:
            return
        try:
            await self._redis.set(session_key(token), user_id, ex=ttl)
        except Exception:
            logger.exception("Failed to cache session for user %s", user_id)

    async def get_user_id(self, token: str) -> str | None:
        """Cached owner of `token`, or None on miss or Redis error."""
        try:
            return await self._redis.get(session_key(token))
        except Exception:
            logger.exception("Session cache lookup failed")
            return None

    async def purge(self, token: str) -> None:
        """Remove a session from the cache.

        Errors propagate: a stale entry would keep a logged-out session usable.
        """
        await self._redis.delete(session_key(token))
