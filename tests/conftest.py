"""
Test configuration

Each test gets its own SQLite database (aiosqlite) with the inventory schema.
Redis publishing is disabled; tests that check events pass an AsyncMock.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from inventory_service import db
from inventory_service.config import get_settings
from inventory_service.schema import create_schema


@pytest_asyncio.fixture
async def store(tmp_path, monkeypatch):
    """Fresh database engine pointing at a temporary SQLite file"""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}")
    monkeypatch.setenv("INVENTORY_EVENTS_ENABLED", "false")
    monkeypatch.setenv("STREAM_CLOSE_DELAY_SECONDS", "0")
    get_settings.cache_clear()
    await db.dispose_engine()

    engine = db.get_engine()
    await create_schema(engine)
    yield engine

    await db.dispose_engine()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def session(store):
    async with db.get_session_factory()() as s:
        yield s


@pytest_asyncio.fixture
async def client(store):
    """Async HTTP client for the FastAPI app (lifespan is not run)"""
    from inventory_service.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def redis_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def seed_inventory(store):
    """Insert an inventory row directly, bypassing the service"""

    async def _seed(product_id, size, stock, reserved=0, threshold=5) -> str:
        inventory_id = str(uuid4())
        now = datetime.now(timezone.utc)
        async with store.begin() as conn:
            await conn.execute(
                text("""
                    INSERT INTO inventory
                        (id, product_id, size, stock_quantity, reserved_quantity,
                         low_stock_threshold, created_at, updated_at)
                    VALUES (:id, :p, :s, :stock, :reserved, :threshold, :now, :now)
                """),
                {
                    "id": inventory_id,
                    "p": product_id,
                    "s": size,
                    "stock": stock,
                    "reserved": reserved,
                    "threshold": threshold,
                    "now": now,
                },
            )
        return inventory_id

    return _seed
