"""
Shared FastAPI dependencies for the screening API.

Provides the async database session dependency used by all route handlers,
plus the collaborators the screening services take explicitly: the provider
registry, the notification dispatcher and the volunteer directory. Tests
swap any of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from screening.core.config import settings
from screening.services.backgroundCheckIntegration import ProviderRegistry
from screening.services.notificationService import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from screening.services.volunteerDirectory import SqlVolunteerDirectory, VolunteerDirectory

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created once at module import time.  The session factory
# produces lightweight ``AsyncSession`` instances that are scoped to a single
# request via the ``get_db`` dependency below.
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session that is committed when the request
    succeeds and rolled back when it raises.

    Usage in a route::

        @router.get("/background-checks/{check_id}")
        async def get_check(check_id: UUID, db: DBSession):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Screening collaborators
# ---------------------------------------------------------------------------

async def get_provider_registry(db: DBSession) -> ProviderRegistry:
    """Provider registry built from the current provider configuration."""
    return await ProviderRegistry.load(db)


_default_dispatcher = LoggingNotificationDispatcher()


def get_notification_dispatcher() -> NotificationDispatcher:
    return _default_dispatcher


def get_volunteer_directory(db: DBSession) -> VolunteerDirectory:
    return SqlVolunteerDirectory(db)


Registry = Annotated[ProviderRegistry, Depends(get_provider_registry)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
Directory = Annotated[VolunteerDirectory, Depends(get_volunteer_directory)]
