"""Database engine, session factory and store initialization."""

from pathlib import Path

import structlog
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from forgecraft import models  # noqa: F401  (registers tables on SQLModel.metadata)
from forgecraft.repositories.queue import QueueRepository

logger = structlog.get_logger()


def create_engine(db_url: str) -> AsyncEngine:
    """Create the async engine for the embedded SQLite store.

    WAL journaling lets status queries from the UI read while the queue
    processor writes.

    Args:
        db_url: SQLite connection URL (sqlite+aiosqlite:///path/to/forgecraft.db)
    """
    url = make_url(db_url)
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        db_url,
        echo=False,  # Don't log SQL queries (use structlog instead)
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return engine


def setup_db_session(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        engine: Engine returned by create_engine()

    Returns:
        Async session factory for creating database sessions
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )


async def recover_interrupted_jobs(session: AsyncSession) -> int:
    """Reset queue items stuck in 'generating' status on startup.

    A process that dies mid-generation leaves its item claiming a worker slot
    that no longer exists. The item goes back to pending so it runs again.

    Args:
        session: Database session for the recovery update

    Returns:
        Number of items reset
    """
    recovered_count = await QueueRepository(session).reset_interrupted()
    await session.commit()

    if recovered_count > 0:
        logger.info("queue.recovery", interrupted_jobs_reset=recovered_count)
    return recovered_count


async def create_schema(engine: AsyncEngine) -> None:
    """Create any missing tables. Safe to run while the app is processing."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    logger.info("database.initialized", url=engine.url.render_as_string(hide_password=True))


async def init_database(
    engine: AsyncEngine, session_factory: async_sessionmaker[AsyncSession]
) -> int:
    """Create the schema and run crash recovery.

    Must run exactly once, at app startup, before the queue processor starts.
    Other processes opening the same store (the CLI) use create_schema() only,
    since recovery would reset the item the app is generating.

    Returns:
        Number of interrupted jobs that were reset to pending
    """
    await create_schema(engine)

    async with session_factory() as session:
        return await recover_interrupted_jobs(session)
