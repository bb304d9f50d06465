"""
Pytest configuration and shared test fixtures.

Tests run against an in-memory SQLite database through aiosqlite. Every
test gets a fresh schema, a controllable clock and factories for users,
products and addresses. API tests talk to the FastAPI app through
``httpx.AsyncClient`` over ``ASGITransport`` with the database and clock
dependencies overridden.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_BACKGROUND_TASKS_ENABLED", "false")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from supplyhub.api.deps import get_clock
from supplyhub.api.rate_limit import limiter
from supplyhub.core.config import Settings, get_settings
from supplyhub.core.security import create_access_token
from supplyhub.database.base import Base
from supplyhub.database.connection import get_db
from supplyhub.database.models import Address, Product, User, UserRole
from supplyhub.main import app


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def settings() -> Settings:
    return get_settings()


# ============================================================================
# Data Factories
# ============================================================================


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    counter = {"n": 0}

    async def _make_user(
        role: UserRole = UserRole.CLIENT,
        name: Optional[str] = None,
        is_active: bool = True,
        phone: Optional[str] = "+250788000000",
    ) -> User:
        counter["n"] += 1
        user = User(
            email=f"{role.value.lower()}{counter['n']}@supplyhub.test",
            name=name or f"{role.value.title()} {counter['n']}",
            phone=phone,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
async def client_user(make_user) -> User:
    return await make_user(UserRole.CLIENT, name="Hotel Mille Collines")


@pytest.fixture
async def other_client(make_user) -> User:
    return await make_user(UserRole.CLIENT, name="Lake Kivu Lodge")


@pytest.fixture
async def manager_user(make_user) -> User:
    return await make_user(UserRole.MANAGER, name="Manager A")


@pytest.fixture
async def second_manager(make_user) -> User:
    return await make_user(UserRole.MANAGER, name="Manager B")


@pytest.fixture
async def admin_user(make_user) -> User:
    return await make_user(UserRole.ADMIN, name="Admin")


@pytest.fixture
async def agent_user(make_user) -> User:
    return await make_user(UserRole.DELIVERY_AGENT, name="Driver", phone="+250788111111")


@pytest.fixture
async def products(db_session: AsyncSession) -> list[Product]:
    items = [
        Product(name="Basmati rice 25kg", sku="RICE-25", unit="bag", active=True),
        Product(name="Sunflower oil 20L", sku="OIL-20", unit="can", active=True),
        Product(name="Discontinued soap", sku="SOAP-OLD", unit="box", active=False),
    ]
    db_session.add_all(items)
    await db_session.commit()
    return items


@pytest.fixture
async def address(db_session: AsyncSession, client_user: User) -> Address:
    address = Address(
        user_id=client_user.id,
        label="Main kitchen",
        street="KN 3 Ave",
        city="Kigali",
        country="Rwanda",
        latitude=Decimal("-1.950000"),
        longitude=Decimal("30.060000"),
    )
    db_session.add(address)
    await db_session.commit()
    return address


# ============================================================================
# API Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
async def api_client(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FakeClock,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client bound to the app, one database session per request.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _auth_headers(user: User) -> dict[str, str]:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
