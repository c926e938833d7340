"""Async database engine, session factory, Redis client and lifespan.

PostgreSQL through asyncpg in deployments; any SQLAlchemy async URL works,
pool sizing is only applied to server databases. Redis backs the session
lookup cache.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ticketzetu.config import settings
from ticketzetu.models import Base
from ticketzetu.models.role import ensure_default_roles

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Async engine for `database_url`; SQLite gets no connection pool sizing."""
    options: dict[str, Any] = {"echo": echo}
    if make_url(database_url).get_backend_name() != "sqlite":
        options.update(pool_size=10, max_overflow=20, pool_pre_ping=True, pool_recycle=3600)
    return create_async_engine(database_url, **options)


# ── Engine / sessions ────────────────────────────────────────────────

engine: AsyncEngine = build_engine(settings.db.database_url, echo=settings.log_level == "DEBUG")

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# ── Redis client ─────────────────────────────────────────────────────

redis_client: aioredis.Redis = aioredis.from_url(
    settings.db.redis_url,
    decode_responses=True,
)


# ── Lifespan helpers ─────────────────────────────────────────────────


async def init_db() -> None:
    """Prepare the schema outside production and seed the default roles.

    Production schemas come from Alembic; there the guest role is seeded
    by the initial migration and this is a no-op insert.
    """
    if not settings.is_production:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        await ensure_default_roles(session)
        await session.commit()

    try:
        await redis_client.ping()
    except RedisError:
        # Sessions still validate against the database without the cache
        logger.warning("Redis unreachable at startup, session cache disabled until it recovers")


async def close_db() -> None:
    await engine.dispose()
    await redis_client.aclose()


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Database and Redis lifecycle for the FastAPI lifespan.

    Usage:
        async with db_lifespan():
            yield
    """
    await init_db()
    try:
        yield
    finally:
        await close_db()
