"""
Inventory Service — テーブル定義

PostgreSQL（本番）と SQLite（テスト）の両方で動く DDL のみを使う。
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from .config import get_settings


def schema_statements(low_stock_threshold_default: int) -> list[str]:
    return [
        f"""
        CREATE TABLE IF NOT EXISTS inventory (
            id TEXT PRIMARY KEY,
            product_id TEXT NOT NULL,
            size TEXT NOT NULL,
            stock_quantity INTEGER NOT NULL DEFAULT 0 CHECK (stock_quantity >= 0),
            reserved_quantity INTEGER NOT NULL DEFAULT 0 CHECK (reserved_quantity >= 0),
            low_stock_threshold INTEGER NOT NULL
                DEFAULT {int(low_stock_threshold_default)} CHECK (low_stock_threshold >= 0),
            created_at TIMESTAMP WITH TIME ZONE,
            updated_at TIMESTAMP WITH TIME ZONE,
            UNIQUE (product_id, size)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS inventory_reservations (
            id TEXT PRIMARY KEY,
            cart_id TEXT NOT NULL,
            inventory_id TEXT NOT NULL REFERENCES inventory (id),
            product_id TEXT NOT NULL,
            size TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity > 0),
            status TEXT NOT NULL DEFAULT 'active',
            expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE,
            released_at TIMESTAMP WITH TIME ZONE
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS ix_inventory_reservations_cart_status
            ON inventory_reservations (cart_id, status)
        """,
        """
        CREATE INDEX IF NOT EXISTS ix_inventory_reservations_status_expires
            ON inventory_reservations (status, expires_at)
        """,
        """
        CREATE TABLE IF NOT EXISTS inventory_movements (
            id TEXT PRIMARY KEY,
            inventory_id TEXT NOT NULL REFERENCES inventory (id),
            movement_type TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            reference_type TEXT,
            reference_id TEXT,
            notes TEXT,
            created_at TIMESTAMP WITH TIME ZONE
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS ix_inventory_movements_inventory
            ON inventory_movements (inventory_id, created_at)
        """,
    ]


async def create_schema(engine: AsyncEngine) -> None:
    settings = get_settings()
    async with engine.begin() as conn:
        for stmt in schema_statements(settings.low_stock_threshold_default):
            await conn.execute(text(stmt))
