"""Database package for HobbyLog."""

from hobbylog.db.base import Base
from hobbylog.db.session import async_session_maker, engine, get_db

__all__ = [
    "Base",
    "async_session_maker",
    "engine",
    "get_db",
]
