"""Shared test configuration and fixtures.

Each test gets a fresh database: an in-memory SQLite database by default,
or the database named by ``TEST_DATABASE_URL`` (e.g. a PostgreSQL instance).
Stripe is never called; routes receive a ``MagicMock(spec=StripeGateway)``.
"""

import os
from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.billing.stripe_client import StripeGateway, get_stripe_gateway
from app.database import Base, get_db
from app.main import app
from app.models.user import User
from factories import create_user, headers_for

_test_db_url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _make_engine():
    if not _test_db_url.startswith("sqlite"):
        return create_async_engine(_test_db_url, echo=False, pool_pre_ping=True)

    engine = create_async_engine(
        _test_db_url,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Create the schema on a fresh engine and drop it afterwards."""
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def gateway() -> MagicMock:
    """A Stripe gateway double; every async method is an ``AsyncMock``."""
    return MagicMock(spec=StripeGateway)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, gateway: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test session and gateway double."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def committing_client(
    db_session: AsyncSession, gateway: MagicMock
) -> AsyncGenerator[AsyncClient, None]:
    """Like ``client``, but each request commits on success and rolls back on error as ``get_db`` does."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: authenticated users
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A user without a Stripe customer yet."""
    return await create_user(db_session)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    return headers_for(test_user)


@pytest_asyncio.fixture
async def customer_user(db_session: AsyncSession) -> User:
    """A user already linked to Stripe customer ``cus_test_123``."""
    return await create_user(db_session, stripe_customer_id="cus_test_123")


@pytest_asyncio.fixture
async def customer_headers(customer_user: User) -> dict[str, str]:
    return headers_for(customer_user)
