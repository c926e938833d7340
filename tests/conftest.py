"""Shared fixtures: in-memory SQLite database, seeded roles, mocked Redis and email."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ticketzetu.models import Base
from ticketzetu.models.role import ensure_default_roles

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as db:
        await ensure_default_roles(db)
        await db.commit()
    return factory


@pytest.fixture()
def redis() -> AsyncMock:
    """Async Redis stand-in: empty cache, successful writes."""
    client = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    return client


@pytest.fixture()
def email_service() -> MagicMock:
    """EmailService stand-in that accepts every job."""
    service = MagicMock()
    service.send_verification_code = AsyncMock(return_value="12345678")
    service.send_login_warning = AsyncMock()
    service.send_password_reset = AsyncMock()
    return service
