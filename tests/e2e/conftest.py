"""
E2E test fixtures for the screening API.

Provides:
- The FastAPI app with the database session, provider registry and
  notification dispatcher swapped for test doubles via dependency_overrides
- httpx AsyncClient wired via ASGI transport (no network needed)

Provider calls are served by the stub adapter from the root conftest, so the
full route -> service -> DB flow is exercised.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from screening.api.deps import get_db, get_notification_dispatcher, get_provider_registry
from screening.main import app


@pytest_asyncio.fixture
async def client(session_factory, registry, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
