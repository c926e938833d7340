"""Public username availability check with suggestions."""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketzetu.auth.validation import validate_username
from ticketzetu.errors import InvalidInput, TooManyRequests
from ticketzetu.models.user import User
from ticketzetu.schemas.auth import UsernameCheckResponse

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5
MAX_CACHED_USERNAMES = 10_000

# (template, tries); "{n}" counts up from 1, "{r}" is a random 3-letter suffix
SUGGESTION_PATTERNS: tuple[tuple[str, int], ...] = (
    ("{base}{n}", 5),
    ("{base}_{n}", 5),
    ("{base}{r}", 3),
    ("the_{base}", 1),
    ("real{base}", 1),
    ("{base}_go", 1),
    ("{base}_now", 1),
    ("{base}_{r}", 3),
)


def _random_suffix(length: int = 3) -> str:
    return "".join(random.choices(string.ascii_lowercase, k=length))


def suggestion_candidates(username: str) -> list[str]:
    """All suggestion candidates for `username`, in preference order."""
    base = username.lower()
    seen: dict[str, None] = {}
    for template, tries in SUGGESTION_PATTERNS:
        for n in range(1, tries + 1):
            seen.setdefault(template.format(base=base, n=n, r=_random_suffix()), None)
    return list(seen)


@dataclass(frozen=True)
class UsernameCheckResult:
    response: UsernameCheckResponse
    cached: bool


class UsernameChecker:
    """Rate-limited, cached availability lookups.

    Each client IP may check once per `min_interval` seconds. Results are
    cached per username for `cache_ttl` seconds; the cache holds at most
    MAX_CACHED_USERNAMES live entries.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_ttl: float = 300.0,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._cache_ttl = cache_ttl
        self._min_interval = min_interval
        self._clock = clock
        self._cache: dict[str, tuple[UsernameCheckResponse, float]] = {}
        self._last_request: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def check(self, username: str, client_ip: str) -> UsernameCheckResult:
        await self._throttle(client_ip)

        username = username.strip()
        if not username:
            raise InvalidInput("username parameter is required")

        async with self._lock:
            cached = self._cache.get(username)
            if cached is not None and cached[1] > self._clock():
                return UsernameCheckResult(cached[0], cached=True)

        validate_username(username)

        async with self._session_factory() as db:
            taken = await db.scalar(select(User.id).where(User.username == username))
            if taken is None:
                response = UsernameCheckResponse(available=True, message="Username is available")
            else:
                response = UsernameCheckResponse(
                    available=False,
                    message="Username is already taken",
                    suggestions=await self._suggestions(db, username),
                )

        async with self._lock:
            self._remember(username, response)
        return UsernameCheckResult(response, cached=False)

    def _remember(self, username: str, response: UsernameCheckResponse) -> None:
        """Cache `response`, dropping expired entries and then the oldest past the cap."""
        now = self._clock()
        self._cache = {name: entry for name, entry in self._cache.items() if entry[1] > now}
        self._cache.pop(username, None)
        while len(self._cache) >= MAX_CACHED_USERNAMES:
            del self._cache[next(iter(self._cache))]
        self._cache[username] = (response, now + self._cache_ttl)

    async def _throttle(self, client_ip: str) -> None:
        async with self._lock:
            now = self._clock()
            last = self._last_request.get(client_ip)
            if last is not None and now - last < self._min_interval:
                raise TooManyRequests()
            self._last_request[client_ip] = now
            if len(self._last_request) > 10_000:
                cutoff = now - self._min_interval
                self._last_request = {ip: t for ip, t in self._last_request.items() if t >= cutoff}

    @staticmethod
    async def _suggestions(db: AsyncSession, username: str) -> list[str]:
        candidates = suggestion_candidates(username)
        rows = await db.execute(select(User.username).where(User.username.in_(candidates)))
        taken = set(rows.scalars())
        return [c for c in candidates if c not in taken][:MAX_SUGGESTIONS]
