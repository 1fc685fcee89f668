"""
Test configuration for pytest
"""

import os

# Test environment variables (set before the application module is imported)
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["WEBHOOK_SECRET"] = ""
os.environ["WHOP_API_KEY"] = ""
os.environ["AUTO_CREATE_TABLES"] = "false"

from typing import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from sqlmodel.ext.asyncio.session import AsyncSession

from member_directory.core.config import Settings
from member_directory.core.database import Database
from member_directory.main import create_app

TEST_WEBHOOK_SECRET = "whsec_dGVzdC1zZWNyZXQ="  # base64("test-secret")


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite+aiosqlite://",
        "WEBHOOK_SECRET": None,
        "WHOP_API_KEY": None,
        "AUTO_CREATE_TABLES": False,
    }
    values.update(overrides)
    return Settings(**values)


async def _start_app(settings: Settings):
    app = create_app(settings)
    await app.state.db.create_all()
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return app, client


async def _stop_app(app, client: httpx.AsyncClient) -> None:
    await client.aclose()
    await app.state.whop_client.aclose()
    await app.state.db.dispose()


@pytest_asyncio.fixture
async def database() -> AsyncIterator[Database]:
    """Fresh in-memory database per test"""
    db = Database("sqlite+aiosqlite://")
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest_asyncio.fixture
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def app_client():
    """(app, client) pair backed by its own in-memory database"""
    app, client = await _start_app(make_settings())
    yield app, client
    await _stop_app(app, client)


@pytest.fixture
def client(app_client) -> httpx.AsyncClient:
    return app_client[1]


@pytest_asyncio.fixture
async def signed_client():
    """Client for an app with webhook signature checks enabled"""
    app, client = await _start_app(make_settings(WEBHOOK_SECRET=TEST_WEBHOOK_SECRET))
    yield client
    await _stop_app(app, client)
