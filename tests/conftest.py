"""Pytest configuration and fixtures."""

import os

# Point the application at SQLite before any goaltrack module builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timedelta
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from goaltrack.clock import Clock, get_clock
from goaltrack.database import get_db
from goaltrack.main import app
from goaltrack.models import Base
from goaltrack.services.goal_service import GoalService

TEST_DATABASE_URL = "sqlite+aiosqlite://"

NOW = datetime(2024, 6, 1, 12, 0, 0)


class FrozenClock(Clock):
    """Clock that only moves when a test tells it to."""

    def __init__(self, current: datetime = NOW):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)

    yield session

    await session.close()
    await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at NOW."""
    return FrozenClock()


@pytest.fixture
def user_id() -> UUID:
    """Owner of the goals created in a test."""
    return uuid4()


@pytest.fixture
def goal_service(db_session: AsyncSession, clock: FrozenClock) -> GoalService:
    """Create goal service instance on the frozen clock."""
    return GoalService(db_session, clock=clock)


@pytest.fixture
async def async_client(
    db_session: AsyncSession, clock: FrozenClock
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database session and clock overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
