"""Pytest fixtures for HRMS engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hrms_engine.config import Settings
from hrms_engine.database import make_session_factory
from hrms_engine.models import Base, Employee

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Monday
MONDAY = datetime(2025, 3, 3, 9, 0)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(MONDAY)


async def _add_employee(session: AsyncSession, username: str, role: str) -> Employee:
    employee = Employee(
        username=username,
        email=f"{username}@example.com",
        full_name=username.title(),
        role=role,
        is_active=True,
    )
    session.add(employee)
    await session.flush()
    return employee


@pytest.fixture
async def employee(session: AsyncSession) -> Employee:
    return await _add_employee(session, "alice", "employee")


@pytest.fixture
async def other_employee(session: AsyncSession) -> Employee:
    return await _add_employee(session, "bob", "employee")


@pytest.fixture
async def admin(session: AsyncSession) -> Employee:
    return await _add_employee(session, "admin", "admin")


@pytest.fixture
async def hr_manager(session: AsyncSession) -> Employee:
    return await _add_employee(session, "hannah", "hr")


@pytest.fixture
def settings() -> Settings:
    """Settings for tests; background jobs are off unless a test turns them on."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        timezone="UTC",
        standard_work_hours=Decimal("8"),
        scheduler_enabled=False,
        reconciler_poll_seconds=60,
        retention_interval_seconds=3600,
        message_retry_interval_seconds=1800,
        messaging_cleanup_interval_seconds=86400,
        toil_expiry_interval_seconds=86400,
    )
