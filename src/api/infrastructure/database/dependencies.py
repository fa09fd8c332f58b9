"""Database dependency injection for FastAPI.

Provides the process-wide ConnectionManager and request-scoped sessions.
Tests replace ``get_connection_manager`` through
``app.dependency_overrides`` rather than touching module state.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.connection_manager import ConnectionManager
from infrastructure.settings import get_database_settings, get_settings


@lru_cache
def get_connection_manager() -> ConnectionManager:
    """Get the application-scoped connection manager (singleton).

    Creating the manager does not connect; the pool is built on first use.

    Raises:
        DatabaseConfigurationError: If DATABASE_URL is not configured.
    """
    return ConnectionManager(
        get_database_settings(),
        production=get_settings().is_production,
    )


async def get_session(
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session for the current request (FastAPI dependency).

    The session is configured to NOT auto-commit. Callers must explicitly
    manage transactions using `async with session.begin()`.

    Usage:
        @router.get("/signatures/{id}")
        async def get_signature(
            session: Annotated[AsyncSession, Depends(get_session)],
        ):
            result = await session.execute(select(Signature).where(...))
            return result.scalar_one_or_none()

    Yields:
        AsyncSession bound to the live pool
    """
    async with manager.session() as session:
        yield session

