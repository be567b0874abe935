"""Async SQLAlchemy setup for the DeployHub ledger.

Exports:
  create_engine_from_url -- engine factory (PostgreSQL in production, SQLite in tests)
  async_engine           -- the shared AsyncEngine instance
  AsyncSessionLocal      -- sessionmaker bound to async_engine
  get_db                 -- FastAPI dependency yielding an AsyncSession
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deployhub.config import settings


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    # ON DELETE CASCADE for secrets and events depends on this
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(url: str, echo: bool = False, pool_size: int = 5) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        # One connection, so an in-memory database is shared by every session
        kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = pool_size

    engine = create_async_engine(url, **kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


async_engine: AsyncEngine = create_engine_from_url(
    settings.DB_URL, echo=settings.DB_ECHO, pool_size=settings.DB_POOL_SIZE
)

AsyncSessionLocal: sessionmaker[AsyncSession] = sessionmaker(  # type: ignore[type-arg]
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Rolls back the active transaction on any unhandled exception,
    then re-raises so the global error handler can produce a response.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
