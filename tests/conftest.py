"""
Shared pytest fixtures for testing the portfolio tracker.

Uses an in-memory SQLite database for fast, isolated tests, and a fake
price source so no test talks to the real price API.
"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from argon2 import PasswordHasher
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cryptofolio.clock import utcnow
from cryptofolio.database import Base, get_session
from cryptofolio.dependencies import get_chart_cache, get_price_source
from cryptofolio.main import app
from cryptofolio.models import Portfolio, Transaction, TransactionType, User
from cryptofolio.services import auth as auth_service
from cryptofolio.services.chart_cache import ChartCache
from cryptofolio.services.price_source import PriceQuote, UpstreamPriceError


# Use in-memory SQLite for tests (fast, isolated)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEFAULT_PASSWORD = "secret123"


class FakePriceSource:
    """In-memory PriceSource that records every call."""

    def __init__(self):
        self.current: dict[str, Decimal] = {
            "BTC": Decimal("50000"),
            "ETH": Decimal("3000"),
            "SOL": Decimal("100"),
        }
        self.historical: dict[tuple[str, date], Decimal] = {}
        self.fail = False
        self.current_calls: list[list[str]] = []
        self.historical_calls: list[tuple[list[str], date]] = []

    async def fetch_current(self, symbols):
        self.current_calls.append(list(symbols))
        if self.fail:
            raise UpstreamPriceError("price API unavailable")
        return [
            PriceQuote(
                symbol=s,
                price_usd=self.current[s],
                market_cap=Decimal("1000000000"),
                volume_24h=Decimal("25000000"),
                change_24h_pct=Decimal("1.5"),
            )
            for s in symbols
            if s in self.current
        ]

    async def fetch_historical(self, symbols, day):
        self.historical_calls.append((list(symbols), day))
        if self.fail:
            raise UpstreamPriceError("price API unavailable")
        return [
            PriceQuote(symbol=s, price_usd=self.historical[(s, day)])
            for s in symbols
            if (s, day) in self.historical
        ]


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Keep argon2 cheap in tests."""
    monkeypatch.setattr(
        auth_service, "password_hasher", PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)
    )


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine.

    Creates tables at the start, drops them at the end.
    Each test gets a fresh database.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine):
    """Provide a database session for a test.

    Rolls back the session after each test for isolation.
    """
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def price_source():
    return FakePriceSource()


@pytest.fixture
def chart_cache():
    return ChartCache(ttl=300)


@pytest_asyncio.fixture
async def test_client(test_engine, price_source, chart_cache):
    """Provide a FastAPI test client with test database.

    Overrides the session, price source and chart cache dependencies.
    """
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_session():
        async with async_session() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_price_source] = lambda: price_source
    app.dependency_overrides[get_chart_cache] = lambda: chart_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


# --- Helper fixtures for creating test data ---

@pytest_asyncio.fixture
async def create_user(test_session):
    """Factory: create a user with a live session, return (user, token)."""

    async def _create(email: str, password: str = DEFAULT_PASSWORD, confirmed: bool = True):
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=auth_service.hash_password(password),
            email_confirmed=confirmed,
        )
        test_session.add(user)
        issued = await auth_service.issue_session(test_session, user)
        await test_session.commit()
        return user, issued.access_token

    return _create


@pytest_asyncio.fixture
async def sample_user(create_user):
    """A confirmed user and their bearer token."""
    return await create_user("alice@example.com")


@pytest.fixture
def auth_headers(sample_user):
    _, token = sample_user
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def other_headers(create_user):
    """Headers for a second user who owns nothing of sample_user's."""
    _, token = await create_user("bob@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def sample_portfolio(test_session, sample_user):
    """An empty portfolio owned by sample_user."""
    user, _ = sample_user
    portfolio = Portfolio(
        id=str(uuid.uuid4()),
        user_id=user.id,
        name="Main",
        created_at=utcnow() - timedelta(days=120),
    )
    test_session.add(portfolio)
    await test_session.commit()
    await test_session.refresh(portfolio)
    return portfolio


@pytest_asyncio.fixture
async def add_transaction(test_session):
    """Factory: insert a transaction row directly."""

    async def _add(
        portfolio: Portfolio,
        symbol: str,
        type: str,
        quantity: str,
        price: str,
        when: datetime | None = None,
    ) -> Transaction:
        txn = Transaction(
            id=str(uuid.uuid4()),
            portfolio_id=portfolio.id,
            symbol=symbol,
            type=TransactionType(type),
            quantity=Decimal(quantity),
            price_per_unit=Decimal(price),
            transaction_date=when or utcnow() - timedelta(days=1),
        )
        test_session.add(txn)
        await test_session.commit()
        return txn

    return _add
