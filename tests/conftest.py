"""Pytest configuration and fixtures."""

import os
import uuid
from typing import AsyncGenerator

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
# Import all models to ensure they're registered with Base.metadata
from app.models import Company, InventoryItem

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
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


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database override."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.UUID("00000000-0000-0000-0000-0000000000aa")


@pytest.fixture
async def company(db_session: AsyncSession) -> Company:
    """Create a test company."""
    company = Company(name="Aqua Distributors", code="AQUA", email="ops@aqua.example")
    db_session.add(company)
    await db_session.commit()
    return company


@pytest.fixture
async def other_company(db_session: AsyncSession) -> Company:
    company = Company(name="Havells Trading", code="HVL")
    db_session.add(company)
    await db_session.commit()
    return company


@pytest.fixture
def make_item(db_session: AsyncSession):
    """Factory for inventory items with consistent stock columns."""
    async def _make_item(
        company: Company,
        item_code: str = "ITM-001",
        current_stock: int = 100,
        average_cost: float = 50.0,
        cost_price=None,
        reserved_stock: int = 0,
        **kwargs,
    ) -> InventoryItem:
        item = InventoryItem(
            company_id=company.id,
            item_code=item_code,
            item_name=kwargs.pop("item_name", f"Item {item_code}"),
            unit=kwargs.pop("unit", "pcs"),
            cost_price=cost_price,
            current_stock=current_stock,
            available_stock=max(0, current_stock - reserved_stock),
            reserved_stock=reserved_stock,
            damaged_stock=0,
            average_cost=average_cost,
            total_value=current_stock * average_cost,
            returns_damaged_active=0,
            returns_returned_active=0,
            stock_version=0,
            **kwargs,
        )
        db_session.add(item)
        await db_session.commit()
        return item

    return _make_item


@pytest.fixture
async def item(make_item, company: Company) -> InventoryItem:
    """ITM-001 with 100 units at an average cost of 50."""
    return await make_item(company)


@pytest.fixture
def headers(company: Company, user_id: uuid.UUID) -> dict:
    return {"X-Company-ID": str(company.id), "X-User-ID": str(user_id)}
