"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Redis-backed side channels are replaced by a
recording broadcaster and a webhook service without an endpoint.
"""

from __future__ import annotations

from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database import Base
from src.services.webhooks import WebhookService
from tests.factories import RecordingBroadcaster, TestSessionFactory, test_engine


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def realtime() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest_asyncio.fixture
async def client(db_session, realtime) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient backed by SQLite with Redis and webhooks stubbed out."""
    from src.api.app import create_app
    from src.api.dependencies import get_db, get_realtime, get_webhooks
    from src.api.middleware import limiter

    async def _test_db():
        async with TestSessionFactory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    with (
        patch("src.workers.dispatcher.start_dispatch_loop", new_callable=AsyncMock),
        patch("src.workers.dispatcher.stop_dispatch_loop", new_callable=AsyncMock),
        patch("src.services.realtime.start_relay", new_callable=AsyncMock),
        patch("src.services.realtime.stop_relay", new_callable=AsyncMock),
    ):
        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_realtime] = lambda: realtime
        app.dependency_overrides[get_webhooks] = lambda: WebhookService()
        limiter.enabled = False

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

        limiter.enabled = True
        app.dependency_overrides.clear()
