"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from src.em_common.database import get_db_session
from src.main import app
from tests.fakes import FakeSession


@pytest.fixture
def fake_db() -> FakeSession:
    return FakeSession()


@pytest.fixture
async def client(fake_db: FakeSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the FastAPI app with the DB session replaced by a fake.

    Lifespan events are not run, so no PostgreSQL or Redis is needed.
    """

    async def _fake_session() -> AsyncGenerator[FakeSession, None]:
        yield fake_db

    app.dependency_overrides[get_db_session] = _fake_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
