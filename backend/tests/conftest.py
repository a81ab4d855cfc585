"""Shared test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (aiosqlite) with all tables
created, so tests are fully isolated and need no running PostgreSQL. The
application and the test share one session, so fixtures commit what they
create and tests re-query state after calling the API.
"""

import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from factories import auth_headers_for, create_user
from stripe_fakes import FakeStripeGateway

from app.billing.stripe_client import get_stripe_gateway
from app.database import Base, get_db
from app.main import app
from app.models.deal import Deal
from app.models.user import User

# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session on the per-test database."""
    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def fake_gateway() -> FakeStripeGateway:
    """Stripe gateway double; tests register subscriptions on it."""
    return FakeStripeGateway()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_gateway: FakeStripeGateway) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and fake Stripe."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: fake_gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: users, memberships, deals
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A member without a pass."""
    return await create_user(db_session)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the test user."""
    return auth_headers_for(test_user.id)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, email=f"admin-{uuid.uuid4().hex[:8]}@test.com", role="admin")


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return auth_headers_for(admin_user.id)


@pytest_asyncio.fixture
async def premium_deal(db_session: AsyncSession) -> Deal:
    deal = Deal(vendor_name="Corner Bakery", title="Free coffee with pastry", tier="standard", is_pass_locked=True)
    db_session.add(deal)
    await db_session.commit()
    return deal


@pytest_asyncio.fixture
async def public_deal(db_session: AsyncSession) -> Deal:
    deal = Deal(vendor_name="Main St Books", title="10% off paperbacks", tier="free", is_pass_locked=False)
    db_session.add(deal)
    await db_session.commit()
    return deal
