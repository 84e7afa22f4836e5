"""
Pytest configuration and shared test fixtures.

This module provides the database, product, token and HTTP client fixtures
shared by the order tests. Every test gets its own SQLite database file so
transactional and concurrency tests run against a real engine.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_JWT_SECRET_KEY", "test-secret-key-for-order-tests")
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///./test-orders.db")

from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.api.deps import get_notification_dispatcher
from src.api.rate_limit import limiter
from src.core.config import Settings
from src.core.security import create_access_token
from src.database.connection import create_engine, create_session_factory, get_db
from src.database.models import Base, Order, Product, ProductStatus, QualityGrade
from src.main import app
from src.services.notifications.dispatcher import RecordingNotificationDispatcher
from src.services.orders.creator import (
    CartLine,
    CreateOrderRequest,
    OrderCreator,
    ShippingDetails,
)
from src.services.orders.enums import ActorRole, PaymentMethod
from src.services.orders.service import Actor

ProductFactory = Callable[..., Awaitable[Product]]


@pytest.fixture(scope="function")
def database_url(tmp_path) -> str:
    """SQLite database file private to one test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"


@pytest.fixture(scope="function")
def settings(database_url: str) -> Settings:
    """
    Settings with the default pricing policy and a per-test database.

    Example:
        def test_rate(settings):
            assert settings.tax_rate == Decimal("0.10")
    """
    return Settings(
        database_url=database_url,
        environment="test",
        allow_late_cancellation=False,
    )


@pytest.fixture(scope="function")
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create the schema in a fresh database and dispose of it afterwards."""
    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture(scope="function")
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session used by the test body."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def farmer_id() -> UUID:
    return uuid4()


@pytest.fixture(scope="function")
def buyer_id() -> UUID:
    return uuid4()


@pytest.fixture(scope="function")
def product_factory(
    session_factory: async_sessionmaker[AsyncSession], farmer_id: UUID
) -> ProductFactory:
    """
    Persist a product and return it.

    Products are committed through their own session so the code under test
    reads them like any other committed row.

    Example:
        tomatoes = await product_factory(price_per_unit=Decimal("200.00"))
    """

    async def make(**overrides: Any) -> Product:
        values: dict[str, Any] = {
            "farmer_id": farmer_id,
            "name": "Heirloom Tomatoes",
            "images": ["https://cdn.example.com/tomatoes.jpg"],
            "price_per_unit": Decimal("200.00"),
            "unit": "kg",
            "available_stock": Decimal("100.000"),
            "min_order": Decimal("1"),
            "max_order": None,
            "quality_grade": QualityGrade.PREMIUM,
            "organic": True,
            "status": ProductStatus.ACTIVE,
        }
        values.update(overrides)
        product = Product(**values)
        async with session_factory() as setup_session:
            setup_session.add(product)
            await setup_session.commit()
        return product

    return make


@pytest.fixture(scope="function")
def stock_of(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[UUID], Awaitable[Decimal]]:
    """Read committed stock for a product through a fresh session."""

    async def read(product_id: UUID) -> Decimal:
        async with session_factory() as check_session:
            product = await check_session.get(Product, product_id)
            return Decimal(str(product.available_stock))

    return read


def _make_request(
    buyer_id: UUID,
    lines: list[tuple[UUID, str]],
    city: str = "Nashik",
    payment_method: PaymentMethod | str = PaymentMethod.UPI,
    vendor_id: UUID | None = None,
) -> CreateOrderRequest:
    return CreateOrderRequest(
        buyer_id=buyer_id,
        lines=[CartLine(product_id=pid, quantity=Decimal(qty)) for pid, qty in lines],
        shipping=ShippingDetails(
            address="12 Market Road",
            city=city,
            state="Maharashtra",
            zip_code="422001",
        ),
        payment_method=payment_method,
        vendor_id=vendor_id,
    )


@pytest.fixture(scope="function")
def make_request() -> Callable[..., CreateOrderRequest]:
    """
    Build an order request from (product_id, quantity) pairs.

    Example:
        request = make_request(buyer_id, [(tomatoes.id, "2.5")])
    """
    return _make_request


@pytest.fixture(scope="function")
def place_order(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    buyer_id: UUID,
) -> Callable[..., Awaitable[Order]]:
    """
    Create and commit an order for the given (product_id, quantity) lines.

    Example:
        order = await place_order([(tomatoes.id, "2.5")])
    """

    async def place(lines: list[tuple[UUID, str]], **kwargs: Any) -> Order:
        async with session_factory() as order_session:
            order = await OrderCreator(order_session, settings=settings).create(
                _make_request(kwargs.pop("buyer_id", buyer_id), lines, **kwargs)
            )
            await order_session.commit()
        return order

    return place


@pytest.fixture(scope="function")
def buyer(buyer_id: UUID) -> Actor:
    return Actor(actor_id=buyer_id, role=ActorRole.BUYER)


@pytest.fixture(scope="function")
def farmer(farmer_id: UUID) -> Actor:
    return Actor(actor_id=farmer_id, role=ActorRole.FARMER)


@pytest.fixture(scope="function")
def admin() -> Actor:
    return Actor(actor_id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture(scope="function")
def auth_headers() -> Callable[[UUID, ActorRole | str], dict[str, str]]:
    """Authorization header carrying a signed access token."""

    def build(actor_id: UUID, role: ActorRole | str) -> dict[str, str]:
        role_value = role.value if isinstance(role, ActorRole) else role
        token = create_access_token(actor_id, role_value)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture(scope="function")
def notifier() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture(scope="function")
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: RecordingNotificationDispatcher,
    monkeypatch,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an asynchronous test client for the FastAPI application.

    The database dependency is bound to the per-test database, notifications
    are recorded in memory and rate limiting is disabled.

    Example:
        async def test_health_endpoint_async(async_client):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as db:
            try:
                yield db
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: notifier
    monkeypatch.setattr(limiter, "enabled", False)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
