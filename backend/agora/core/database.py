"""
Database engine and session management.

The engine is created lazily so tests (and scripts) can point the
application at another database with `configure()` before first use.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from loguru import logger
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from agora.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all forum models."""


engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def configure(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create the engine and session factory.

    Args:
        url: Database URL (defaults to settings.database_url)
        echo: Log SQL statements (defaults to settings.debug)

    Returns:
        The new engine
    """
    global engine, AsyncSessionLocal

    url = url or settings.database_url
    options: dict = {"echo": settings.debug if echo is None else echo}
    if url.startswith("postgresql"):
        options.update(
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    engine = create_async_engine(url, **options)
    if url.startswith("sqlite"):
        _serialize_sqlite_transactions(engine)

    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    SQLite allows one writer at a time. Every transaction takes the write
    lock when it begins, so a background session waits for the request
    session to commit instead of failing on a lock upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> AsyncEngine:
    """Get the current engine, creating it on first use."""
    if engine is None:
        configure()
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the current session factory, creating it on first use."""
    if AsyncSessionLocal is None:
        configure()
    return AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency providing one session per request.

    The request's work is committed when the handler returns and rolled
    back when it raises.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Independent committed session for work outside a request."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Group statements that must succeed or fail together.

    Pending changes are flushed when the block completes. If anything in
    the block raises, the whole session transaction is rolled back so no
    partial write survives.
    """
    try:
        yield session
        await session.flush()
    except Exception:
        await session.rollback()
        raise


async def init_db() -> None:
    """Create tables for all registered models."""
    import agora.models  # noqa: F401  (register mappers)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database schema ensured")


async def close_db() -> None:
    """Dispose the engine and its pooled connections."""
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None
