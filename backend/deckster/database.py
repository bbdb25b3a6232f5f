"""Database engine, session factory and declarative base.

The engine is created once per process from settings. The FastAPI lifespan
calls ``init_db`` on startup and ``close_db`` on shutdown; request handlers
receive sessions through the ``get_db`` dependency.
"""

from collections.abc import AsyncIterator
from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from deckster.config import settings

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from drivers without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine for the given URL."""
    if url.startswith("sqlite"):
        # One connection per checkout; safe across event loops
        return create_async_engine(url, poolclass=NullPool)
    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=settings.debug,
    )


engine = build_engine(settings.async_database_url)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a database session."""
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """Create tables outside production; production schema is owned by Alembic."""
    import deckster.models  # noqa: F401 - register all models on Base.metadata

    if settings.is_production:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()


def insert_for(session: AsyncSession):
    """Return the dialect-specific ``insert`` that supports ``on_conflict_do_update``."""
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert
