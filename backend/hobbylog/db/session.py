"""Database session management."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from hobbylog.core.config import settings


def get_database_url() -> str:
    """Get the database URL, ensuring the SQLite directory exists."""
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return settings.database_url


def configure_sqlite_engine(async_engine: AsyncEngine) -> AsyncEngine:
    """Install connection hooks needed by SQLite.

    The pysqlite driver defers BEGIN until the first DML statement, which breaks
    SAVEPOINT handling. Autocommit is disabled at the driver level and BEGIN is
    emitted by SQLAlchemy instead, so nested transactions used for tag insert
    conflict recovery behave like on any other database.
    """
    sync_engine = async_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=30000")  # 30 second busy timeout
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return async_engine


def create_engine_from_settings() -> AsyncEngine:
    """Create the application engine."""
    url = get_database_url()
    if settings.is_sqlite:
        return configure_sqlite_engine(
            create_async_engine(
                url,
                echo=settings.debug,
                connect_args={"timeout": 30},
            )
        )
    return create_async_engine(url, echo=settings.debug, pool_pre_ping=True)


engine = create_engine_from_settings()


# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    The session commits when the request handler returns and rolls back on any
    exception, so a failed tag association aborts the whole save.

    Yields:
        An async database session.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
