"""Engine and session factories for the race tables."""

from __future__ import annotations

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Return an async engine; SQLite files are used by tests and local runs."""

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, echo=echo)
    return create_async_engine(url, echo=echo, pool_pre_ping=True, pool_size=5, max_overflow=5)


def async_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are converted to domain records after commit.
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
