"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-fulfillment")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"

import uuid
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fulfillment.core.security import create_user_token
from fulfillment.database import Base, get_db
from fulfillment.main import app
# Import all models to ensure they're registered with Base.metadata
from fulfillment.models import *  # noqa: F401,F403
from fulfillment.models.product import Product
from fulfillment.models.user import User

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

COMPANY_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
PARTY_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
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
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by tests to seed and inspect data."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory, test_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated API client; every request gets its own session, as in production."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    token = create_user_token(test_user)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    ) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(
        name="Test User",
        email="staff@example.com",
        role="admin",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def tile(db_session: AsyncSession) -> Product:
    """Product with fresh stock."""
    product = Product(
        product_code="TILE-001",
        name="Vitrified Floor Tile 600x600",
        brand="Kajaria",
        mrp=Decimal("120.00"),
        fresh_stock=10,
    )
    db_session.add(product)
    await db_session.commit()
    return product


@pytest.fixture
async def tap(db_session: AsyncSession) -> Product:
    """Product with no stock."""
    product = Product(
        product_code="TAP-001",
        name="Pillar Tap",
        brand="Jaquar",
        mrp=Decimal("250.00"),
    )
    db_session.add(product)
    await db_session.commit()
    return product


def order_payload(tile: Product, tap: Product, **overrides) -> dict:
    """
    Kitchen group: 10 tiles at 100 and 5 taps at 200.

    grand total 2000, GST 18% 360, net payable 2360.
    """
    payload = {
        "company_id": str(COMPANY_ID),
        "company_name": "Acme Interiors",
        "party_id": str(PARTY_ID),
        "party_name": "Sharma Builders",
        "site_name": "Tower B",
        "gst_percentage": "18",
        "groups": [
            {
                "group_name": "Kitchen",
                "items": [
                    {"product_id": str(tile.id), "quantity": 10, "net_rate": "100.00", "mrp": "120.00"},
                    {"product_id": str(tap.id), "quantity": 5, "net_rate": "200.00", "mrp": "250.00"},
                ],
            }
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_order(client: AsyncClient, tile: Product, tap: Product):
    """Factory posting an order and returning its JSON."""
    async def _create(**overrides) -> dict:
        response = await client.post("/api/order", json=order_payload(tile, tap, **overrides))
        assert response.status_code == 201, response.text
        return response.json()
    return _create


async def reload(session: AsyncSession, instance):
    """Re-read a row written by another session."""
    await session.refresh(instance)
    return instance


def money(value) -> Decimal:
    """Decimals are serialized as strings in JSON responses."""
    return Decimal(str(value))
