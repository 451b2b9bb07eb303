"""
Database Connection and Session Management

Provides async SQLAlchemy 2.0 engine, session factory, schema
initialization and the additive migration path for older installations.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from slotbook.config import settings
from slotbook.models.database import Base

logger = logging.getLogger(__name__)

# Columns added after the first release: (table, column, DDL type)
ADDITIVE_COLUMNS: list[tuple[str, str, str]] = [
    ("appointments", "feedback_score", "INTEGER"),
]


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    return create_async_engine(database_url, echo=echo, future=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = build_engine(settings.database_url, echo=settings.debug)

# Create session factory
async_session_factory = build_session_factory(engine)


@asynccontextmanager
async def get_db_context(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions.

    Commits on success, rolls back on exception.

    Usage:
        async with get_db_context() as db:
            result = await db.execute(select(Appointment))
            appointments = result.scalars().all()

    Yields:
        AsyncSession: Database session
    """
    factory = session_factory or async_session_factory
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def _apply_additive_migrations(conn: Connection) -> list[str]:
    """Add columns missing from tables created by older releases.

    Tables that do not exist yet are skipped; create_all builds them
    with the full schema.

    Returns:
        List of "table.column" entries that were added
    """
    inspector = inspect(conn)
    existing_tables = set(inspector.get_table_names())
    added = []

    for table, column, ddl_type in ADDITIVE_COLUMNS:
        if table not in existing_tables:
            continue
        columns = {c["name"] for c in inspector.get_columns(table)}
        if column in columns:
            continue
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
        added.append(f"{table}.{column}")

    return added


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Migrate existing tables and create missing ones.

    Safe to run on every startup: existing rows are preserved.

    Usage:
        await init_db()
    """
    target = bind or engine
    async with target.begin() as conn:
        added = await conn.run_sync(_apply_additive_migrations)
        for entry in added:
            logger.info(f"Migrated schema: added column {entry}")
        await conn.run_sync(Base.metadata.create_all)


async def close_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Close all database connections.

    Should be called during application shutdown.
    """
    await (bind or engine).dispose()


async def check_db_health(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> bool:
    """
    Check database connectivity for health checks.

    Returns:
        bool: True if database is accessible, False otherwise
    """
    try:
        async with get_db_context(session_factory) as db:
            await db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False
