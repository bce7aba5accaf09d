"""Tests for database engine and session management."""

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from stockcount.database.engine import (
    AsyncSessionLocal,
    _engine_options,
    engine,
    get_session,
)
from stockcount.database.models import Base


class TestDatabaseEngine:
    """Tests for database engine."""

    def test_engine_is_async(self) -> None:
        """Test that the engine is an async engine."""
        assert isinstance(engine, AsyncEngine)

    def test_engine_url_follows_database_url(self) -> None:
        # conftest points DATABASE_URL at in-memory SQLite before import
        assert engine.url.drivername == "sqlite+aiosqlite"

    def test_pool_pre_ping_enabled(self) -> None:
        """Verify pool_pre_ping is True to detect stale connections."""
        assert engine.pool._pre_ping is True

    def test_postgres_options_include_pool_sizing(self) -> None:
        options = _engine_options("postgresql+asyncpg://u:p@db:5432/stockcount")

        assert options["pool_size"] == 5
        assert options["max_overflow"] == 10
        assert options["pool_recycle"] == 3600
        assert options["pool_pre_ping"] is True

    def test_sqlite_options_skip_pool_sizing(self) -> None:
        options = _engine_options("sqlite+aiosqlite:///:memory:")

        assert "pool_size" not in options
        assert "pool_recycle" not in options


class TestSessionFactory:
    """Tests for session factory."""

    @pytest.mark.asyncio
    async def test_create_session(self) -> None:
        """Test creating a session from the factory."""
        async with AsyncSessionLocal() as session:
            assert isinstance(session, AsyncSession)

    @pytest.mark.asyncio
    async def test_session_independent(self) -> None:
        """Test that sessions are independent."""
        async with AsyncSessionLocal() as session1:
            async with AsyncSessionLocal() as session2:
                assert session1 is not session2


class TestInitDb:
    """Tests for database initialization."""

    @pytest.mark.asyncio
    async def test_metadata_has_all_tables(self, test_engine: Any) -> None:
        async with test_engine.connect() as conn:
            result = await conn.run_sync(lambda sync_conn: set(Base.metadata.tables.keys()))

        assert result == {"products", "inventories", "inventory_items", "stock_adjustments", "transaction_log"}


class TestGetSession:
    """Tests for get_session context manager."""

    @pytest.mark.asyncio
    async def test_get_session_yields_session(self) -> None:
        """Test that get_session yields a valid session."""
        async for session in get_session():
            assert isinstance(session, AsyncSession)
            break
