"""Async SQLAlchemy engine, table creation and unit-of-work sessions (SQLite).

Usage:
    engine = create_engine(settings.database_url)
    await create_tables(engine)
    async with get_session(engine) as session:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from eventsmode.db.models import Base

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 15

# Applied to every new DBAPI connection. The bot, the maintenance jobs and
# the HTTP routes all write to the same file.
SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    f"PRAGMA busy_timeout={BUSY_TIMEOUT_SECONDS * 1000}",
    "PRAGMA foreign_keys=ON",
)


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine with WAL mode, a busy timeout and enforced foreign keys."""
    engine = create_async_engine(
        database_url, echo=False, connect_args={"timeout": BUSY_TIMEOUT_SECONDS}
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _apply_pragmas(dbapi_conn: object, connection_record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[union-attr]
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    return engine


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db_tables_ready tables=%d", len(Base.metadata.tables))


_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for *engine*, built once per engine instance."""
    factory = _session_factories.get(id(engine.sync_engine))
    if factory is None:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _session_factories[id(engine.sync_engine)] = factory
    return factory


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit when the block exits cleanly, roll back otherwise."""
    async with create_session_factory(engine)() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # Any failure rolls the unit of work back before re-raising
            await session.rollback()
            raise
