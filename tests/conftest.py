"""
Pytest fixtures for test infrastructure.

This module is automatically loaded by pytest and provides shared fixtures:
an in-memory SQLite database wired into src.archivist.database, row
factories, and fakes for time and event delivery.
For fakes and helper functions, see test_helpers.py.
"""

import itertools
import os
from datetime import timedelta
from typing import Optional

# Must be set before src.config.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from src.archivist import database
from src.archivist.models import Monitor, User
from tests.test_helpers import BASE_TIME, FakeClock, FakeSleeper, RecordingSink


# =============================================================================
# Fakes
# =============================================================================
@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return FakeSleeper(clock)


@pytest.fixture
def sink():
    return RecordingSink()


# =============================================================================
# Database
# =============================================================================
@pytest_asyncio.fixture
async def db(monkeypatch):
    """Fresh in-memory database; get_session() uses it for the test."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "async_session_factory", factory)
    yield factory
    await engine.dispose()


@pytest.fixture
def make_user(db):
    """Insert a user with a tier."""
    async def _create(user_id: str = "user-1", tier: Optional[str] = "pro") -> str:
        async with db() as session:
            session.add(User(id=user_id, subscription_status=tier))
            await session.commit()
        return user_id
    return _create


@pytest.fixture
def make_monitor(db):
    """Insert a monitor. Creation order is load order."""
    counter = itertools.count()

    async def _create(user_id: str = "user-1", sources=("hackernews",), **fields) -> str:
        n = next(counter)
        fields.setdefault("id", f"mon-{n}")
        fields.setdefault("name", f"Monitor {n}")
        fields.setdefault("company_name", "Acme")
        fields.setdefault("keywords", ["acme"])
        fields.setdefault("created_at", BASE_TIME - timedelta(days=1) + timedelta(seconds=n))
        fields.setdefault("updated_at", BASE_TIME - timedelta(days=1))
        async with db() as session:
            session.add(Monitor(user_id=user_id, sources=list(sources), **fields))
            await session.commit()
        return fields["id"]
    return _create


@pytest.fixture
def load_monitor(db):
    """Read a monitor row back."""
    async def _load(monitor_id: str) -> Monitor:
        async with db() as session:
            return await session.get(Monitor, monitor_id)
    return _load
