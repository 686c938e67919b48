"""
Inventory Service — 在庫移動台帳

在庫数の変更理由を記録する追記専用のログ。更新・削除はしない。
record_movement は呼び出し側のトランザクション内で INSERT するだけで
コミットしない。在庫数の変更と同じコミットで台帳に残すため。
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .queries import to_iso


class MovementType(str, Enum):
    RESTOCK = "restock"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    MANUAL = "manual"


async def record_movement(
    session: AsyncSession,
    inventory_id: str,
    movement_type: MovementType,
    quantity: int,
    reference_type: str = "manual",
    notes: str | None = None,
    reference_id: str | None = None,
) -> str:
    movement_id = str(uuid4())
    await session.execute(
        text("""
            INSERT INTO inventory_movements
                (id, inventory_id, movement_type, quantity,
                 reference_type, reference_id, notes, created_at)
            VALUES
                (:id, :inventory_id, :movement_type, :quantity,
                 :reference_type, :reference_id, :notes, :now)
        """),
        {
            "id": movement_id,
            "inventory_id": inventory_id,
            "movement_type": MovementType(movement_type).value,
            "quantity": quantity,
            "reference_type": reference_type,
            "reference_id": reference_id,
            "notes": notes,
            "now": datetime.now(timezone.utc),
        },
    )
    return movement_id


async def list_movements(session: AsyncSession, inventory_id: str) -> list[dict]:
    result = await session.execute(
        text("""
            SELECT id, inventory_id, movement_type, quantity,
                   reference_type, reference_id, notes, created_at
            FROM inventory_movements
            WHERE inventory_id = :inventory_id
            ORDER BY created_at ASC, id ASC
        """),
        {"inventory_id": inventory_id},
    )
    return [
        {
            "id": row.id,
            "inventory_id": row.inventory_id,
            "movement_type": row.movement_type,
            "quantity": row.quantity,
            "reference_type": row.reference_type,
            "reference_id": row.reference_id,
            "notes": row.notes,
            "created_at": to_iso(row.created_at),
        }
        for row in result.fetchall()
    ]
