"""FastAPI dependency injection for database sessions and repository."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from eventsmode.db.engine import create_session_factory
from eventsmode.db.repository import Repository


async def get_engine(request: Request) -> AsyncEngine:
    """Get the database engine from app state."""
    return request.app.state.engine


async def get_session(
    engine: Annotated[AsyncEngine, Depends(get_engine)],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session. Read-only routes still commit nothing harmful."""
    factory = create_session_factory(engine)
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # Re-raise pattern: catch all so any error rolls back
            await session.rollback()
            raise


async def get_repo(session: Annotated[AsyncSession, Depends(get_session)]) -> Repository:
    return Repository(session)


RepoDep = Annotated[Repository, Depends(get_repo)]
