"""
Inventory Service — イベント定義

書き込みがコミットされた後、inventory_events チャネルに発行する。
発行はベストエフォート。失敗してもリクエストは失敗させない
（正はあくまでデータベース側）。
"""

import json
import logging
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel

logger = logging.getLogger(__name__)

CHANNEL = "inventory_events"


class StockUpdated(BaseModel):
    """在庫数が更新された"""
    inventory_id: str
    product_id: str
    size: str
    stock_quantity: int
    movement_type: str
    timestamp: datetime


class InventoryReserved(BaseModel):
    """カートに在庫が引き当てられた"""
    cart_id: str
    product_id: str
    size: str
    quantity: int
    expires_at: datetime
    timestamp: datetime


class InventoryReservationFailed(BaseModel):
    """在庫引き当てが失敗した（在庫不足または行なし）"""
    cart_id: str
    product_id: str
    size: str
    quantity_requested: int
    timestamp: datetime


class InventoryReleased(BaseModel):
    """カートの引き当てが解放された"""
    cart_id: str
    released: int
    timestamp: datetime


class ReservationsExpired(BaseModel):
    """期限切れの引き当てが掃除された"""
    expired: int
    timestamp: datetime


async def publish(redis: aioredis.Redis | None, event: BaseModel) -> None:
    if redis is None:
        return
    event_type = type(event).__name__
    try:
        await redis.publish(
            CHANNEL,
            json.dumps(
                {
                    "event_type": event_type,
                    "data": event.model_dump(mode="json"),
                },
                default=str,
            ),
        )
    except Exception:
        logger.exception("Failed to publish %s event", event_type)
