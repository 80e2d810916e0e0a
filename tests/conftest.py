"""
Test fixtures for the Splice API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Test client with a registered user and access token
  - second_authenticated_client: A second user for cross-user tests
  - offline_rate_providers: Rate providers that fail instead of calling out

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database — no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test session,
    so the application code works exactly as it does in production.
  - The authenticated clients register and log in through the real
    /user endpoints, so they exercise the real auth flow.
  - Background jobs are disabled before the app is imported; tests call
    job functions directly.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["SCHEDULER_ENABLED"] = "false"

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.database import Base, get_db
from app.exceptions import SpliceAPIError
from app.main import app
from app.providers import rate_providers


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

PASSWORD = "SecurePass123!"


@pytest.fixture(autouse=True)
def offline_rate_providers(monkeypatch):
    """
    Replace the module-level rate providers with ones whose every request
    fails with 503, so listeners that look up rates never reach the network.

    Tests that need rates either store them first or patch the providers.
    """
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    monkeypatch.setattr(
        rate_providers, "fiat_provider", rate_providers.FiatExchangeRateProvider(transport=transport)
    )
    monkeypatch.setattr(
        rate_providers, "crypto_provider", rate_providers.CryptoExchangeRateProvider(transport=transport)
    )


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except SpliceAPIError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def register_and_login(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
    """Register a user, log in, and return the login response body."""
    response = await client.post("/user/register", json={"email": email, "password": password})
    assert response.status_code == 201, f"Register failed: {response.text}"
    response = await client.post("/user/login", json={"email": email, "password": password})
    assert response.status_code == 200, f"Login failed: {response.text}"
    return response.json()


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Test client with a registered user and access token.

    The Authorization header is set on the client for all later requests.
    """
    tokens = await register_and_login(client, "testuser@example.com")
    client.headers["Authorization"] = f"Bearer {tokens['access_token']}"
    client.user_id = tokens["user"]["id"]
    client.refresh_token = tokens["refresh_token"]
    return client


@pytest_asyncio.fixture
async def second_authenticated_client(client):
    """
    A second, independent client logged in as another user.

    Use this alongside authenticated_client to verify that one user
    cannot see or change another user's data.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        tokens = await register_and_login(ac, "seconduser@example.com", "SecurePass456!")
        ac.headers["Authorization"] = f"Bearer {tokens['access_token']}"
        ac.user_id = tokens["user"]["id"]
        yield ac


def money(amount: int, currency: str = "USD", sign: str = "positive") -> dict:
    """Wire format of a MoneyWithSign value."""
    return {"money": {"amount": amount, "currency": currency}, "sign": sign}
