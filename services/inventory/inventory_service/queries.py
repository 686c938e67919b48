"""
Inventory Service — クエリハンドラ (Read 側)

読み取りは毎回ストアに問い合わせる。プロセス内キャッシュは持たない。
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .availability import with_availability

INVENTORY_COLUMNS = """
    id, product_id, size, stock_quantity, reserved_quantity,
    low_stock_threshold, created_at, updated_at
"""


def to_iso(value) -> str | None:
    # PostgreSQL は datetime、SQLite は文字列で返す
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def row_to_record(row) -> dict:
    return {
        "id": row.id,
        "product_id": row.product_id,
        "size": row.size,
        "stock_quantity": row.stock_quantity,
        "reserved_quantity": row.reserved_quantity,
        "low_stock_threshold": row.low_stock_threshold,
        "created_at": to_iso(row.created_at),
        "updated_at": to_iso(row.updated_at),
    }


async def get_inventory_for_product(session: AsyncSession, product_id: str) -> list[dict]:
    """商品の全サイズの在庫を有効在庫付きで返す。"""
    result = await session.execute(
        text(f"""
            SELECT {INVENTORY_COLUMNS}
            FROM inventory
            WHERE product_id = :product_id
            ORDER BY size
        """),
        {"product_id": product_id},
    )
    return [with_availability(row_to_record(row)) for row in result.fetchall()]


async def get_low_stock_items(session: AsyncSession) -> list[dict]:
    """
    在庫数がしきい値以下の行を返す。

    比較は予約前の生の stock_quantity で行う（商品別の is_low_stock は
    有効在庫で判定するので、両者は一致しないことがある）。
    """
    result = await session.execute(
        text(f"""
            SELECT {INVENTORY_COLUMNS}
            FROM inventory
            WHERE stock_quantity <= low_stock_threshold
            ORDER BY product_id, size
        """),
    )
    return [row_to_record(row) for row in result.fetchall()]


async def get_inventory_record(
    session: AsyncSession, product_id: str, size: str
) -> dict | None:
    result = await session.execute(
        text(f"""
            SELECT {INVENTORY_COLUMNS}
            FROM inventory
            WHERE product_id = :product_id AND size = :size
        """),
        {"product_id": product_id, "size": size},
    )
    row = result.fetchone()
    if not row:
        return None
    return with_availability(row_to_record(row))


async def get_inventory_by_id(session: AsyncSession, inventory_id: str) -> dict | None:
    result = await session.execute(
        text(f"SELECT {INVENTORY_COLUMNS} FROM inventory WHERE id = :id"),
        {"id": inventory_id},
    )
    row = result.fetchone()
    if not row:
        return None
    return with_availability(row_to_record(row))
