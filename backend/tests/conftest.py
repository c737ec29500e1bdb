"""Pytest configuration and fixtures."""

import os

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Point settings at an in-memory database BEFORE importing app modules
os.environ["HOBBYLOG_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["HOBBYLOG_DEBUG"] = "false"

from hobbylog.db import get_db
from hobbylog.db.base import Base
from hobbylog.db.session import configure_sqlite_engine
from hobbylog.main import app

OWNER_ID = "user-owner"
OTHER_USER_ID = "user-other"


@pytest.fixture
async def db_engine():
    """Create an in-memory test database engine."""
    engine = configure_sqlite_engine(
        create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """Session factory configured like the application's."""
    return async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_maker):
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker):
    """Create a test client with overridden database dependency."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return {"X-User-Id": OWNER_ID}


@pytest.fixture
def other_headers() -> dict[str, str]:
    return {"X-User-Id": OTHER_USER_ID}
