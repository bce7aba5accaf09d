"""Pytest configuration and shared fixtures."""

import os
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Point the module-level engine at SQLite before any stockcount import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from stockcount.collaborators import SqlStockLedger  # noqa: E402
from stockcount.config import Settings  # noqa: E402
from stockcount.database.crud import create_product  # noqa: E402
from stockcount.database.models import Base, Product  # noqa: E402
from stockcount.reconciliation import ReconciliationEngine, UncountedPolicy  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(database_url=TEST_DATABASE_URL, debug=True)


@pytest_asyncio.fixture
async def test_engine(test_settings: Settings) -> AsyncGenerator[Any, None]:
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: Any) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


class AsyncContextManagerMock:
    """Mock async context manager for testing."""

    def __init__(self, return_value: Any) -> None:
        self.return_value = return_value

    async def __aenter__(self) -> Any:
        return self.return_value

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        return False


@pytest.fixture
def mock_session_factory(db_session: AsyncSession) -> Any:
    """Create a mock session factory that returns the test session."""

    def factory() -> AsyncContextManagerMock:
        return AsyncContextManagerMock(db_session)

    return factory


@pytest_asyncio.fixture
async def catalog(db_session: AsyncSession) -> dict[str, int]:
    """Seed a small catalog and return product IDs by key.

    IDs rather than ORM objects: a rolled back test session expires loaded
    instances, and reloading them lazily is not possible under asyncio.
    """
    products: list[tuple[str, Product]] = [
        ("cola", await create_product(db_session, "Cola 33cl", "COLA-33", quantity=10, barcode="5449000000996")),
        ("chips", await create_product(db_session, "Salted Chips", "CHIPS-150", quantity=5)),
        ("water", await create_product(db_session, "Still Water 1L", "WATER-1L", quantity=24)),
        ("retired", await create_product(db_session, "Old Soda", "SODA-OLD", quantity=3, is_active=False)),
    ]
    return {key: product.id for key, product in products}


@pytest.fixture
def reconciler(mock_session_factory: Any) -> ReconciliationEngine:
    """Engine bound to the test session with the SQL catalog and ledger."""
    return ReconciliationEngine(mock_session_factory)


@pytest.fixture
def zero_policy_reconciler(mock_session_factory: Any) -> ReconciliationEngine:
    return ReconciliationEngine(mock_session_factory, uncounted_policy=UncountedPolicy.ZERO)


@pytest.fixture
def strict_reconciler(mock_session_factory: Any) -> ReconciliationEngine:
    """Engine whose ledger rejects adjustments that would take stock below zero."""
    return ReconciliationEngine(mock_session_factory, stock=SqlStockLedger(clamp_at_zero=False))
