"""
Inventory Service — コマンドハンドラ (Write 側)

在庫数の更新（単体・一括）を処理する。
在庫行は (product_id, size) で upsert する。未知の組み合わせなら新規作成。
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

import pydantic
import redis.asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import events, movements
from .availability import with_availability
from .db import translate_store_error
from .errors import InventoryError
from .models import BulkUpdateItem, describe_errors
from .queries import INVENTORY_COLUMNS, row_to_record

logger = logging.getLogger(__name__)


async def _upsert_stock(
    session: AsyncSession,
    product_id: str,
    size: str,
    quantity: int,
    low_stock_threshold: int,
    overwrite_threshold: bool,
) -> dict:
    now = datetime.now(timezone.utc)
    threshold_update = (
        ", low_stock_threshold = excluded.low_stock_threshold" if overwrite_threshold else ""
    )
    result = await session.execute(
        text(f"""
            INSERT INTO inventory
                (id, product_id, size, stock_quantity, reserved_quantity,
                 low_stock_threshold, created_at, updated_at)
            VALUES
                (:id, :product_id, :size, :qty, 0, :threshold, :now, :now)
            ON CONFLICT (product_id, size) DO UPDATE
            SET stock_quantity = excluded.stock_quantity,
                updated_at = excluded.updated_at{threshold_update}
            RETURNING {INVENTORY_COLUMNS}
        """),
        {
            "id": str(uuid4()),
            "product_id": product_id,
            "size": size,
            "qty": quantity,
            "threshold": low_stock_threshold,
            "now": now,
        },
    )
    return row_to_record(result.fetchone())


async def update_stock(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    product_id: str,
    size: str,
    quantity: int,
    movement_type: movements.MovementType,
    notes: str | None,
    default_threshold: int,
) -> dict:
    """
    在庫数更新コマンド

    在庫数の upsert と移動台帳への記録を1つのトランザクションでコミットする。
    """
    record = await _upsert_stock(
        session, product_id, size, quantity, default_threshold, overwrite_threshold=False
    )
    await movements.record_movement(
        session,
        record["id"],
        movement_type,
        quantity,
        reference_type="manual",
        notes=notes,
    )
    await session.commit()

    logger.info(
        "Stock for %s/%s set to %d (%s)",
        product_id, size, quantity, movements.MovementType(movement_type).value,
    )
    await events.publish(
        redis,
        events.StockUpdated(
            inventory_id=record["id"],
            product_id=product_id,
            size=size,
            stock_quantity=record["stock_quantity"],
            movement_type=movements.MovementType(movement_type).value,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return with_availability(record)


async def bulk_update(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    updates: list,
    default_threshold: int,
) -> list[dict]:
    """
    一括在庫更新コマンド

    1件ずつコミットする。全体を1トランザクションにはしない:
    不正な行や失敗した行があっても、正しい行は反映される。
    結果は入力と同じ件数・同じ順序で返す。
    """
    results = []
    for raw in updates:
        raw = raw if isinstance(raw, dict) else {}
        product_id = raw.get("productId")
        size = raw.get("size")

        try:
            item = BulkUpdateItem.model_validate(raw)
        except pydantic.ValidationError as e:
            results.append({"productId": product_id, "size": size, "error": describe_errors(e)})
            continue

        threshold = (
            item.low_stock_threshold
            if item.low_stock_threshold is not None
            else default_threshold
        )
        try:
            record = await _upsert_stock(
                session,
                item.product_id,
                item.size,
                item.quantity,
                threshold,
                overwrite_threshold=True,
            )
            await movements.record_movement(
                session,
                record["id"],
                movements.MovementType.ADJUSTMENT,
                item.quantity,
                reference_type="bulk_update",
            )
            await session.commit()
        except (SQLAlchemyError, OSError, InventoryError) as e:
            await session.rollback()
            error = translate_store_error(e)
            logger.warning("Bulk update failed for %s/%s: %s", product_id, size, error)
            results.append({"productId": product_id, "size": size, "error": error.message})
            continue

        results.append({"productId": product_id, "size": size, "success": True})
        await events.publish(
            redis,
            events.StockUpdated(
                inventory_id=record["id"],
                product_id=item.product_id,
                size=item.size,
                stock_quantity=record["stock_quantity"],
                movement_type=movements.MovementType.ADJUSTMENT.value,
                timestamp=datetime.now(timezone.utc),
            ),
        )

    logger.info("Bulk update processed %d entries", len(results))
    return results
