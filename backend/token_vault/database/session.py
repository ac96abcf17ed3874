"""
Engine and session factory setup.

Stores take a session factory rather than a session so each operation
runs in its own short-lived session. All database I/O is async so a slow
commit never stalls the event loop.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from token_vault.db_base import Base

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE_URLS = ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:")


def normalize_database_url(database_url: str) -> str:
    """
    Rewrite plain database URLs to their async driver form.

    postgres:// and postgresql:// use asyncpg; sqlite:// uses aiosqlite.
    URLs that already name a driver are left alone.
    """
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_db_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    In-memory SQLite keeps a single connection so every session sees the
    same database.
    """
    database_url = normalize_database_url(database_url)

    if database_url in IN_MEMORY_SQLITE_URLS:
        return create_async_engine(database_url, poolclass=StaticPool)
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url)

    return create_async_engine(database_url, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Async session factory bound to the engine."""
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Register models on Base.metadata
    from token_vault import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", extra={"dialect": engine.dialect.name})
