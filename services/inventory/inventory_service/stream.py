"""
Inventory Service — 在庫ストリーム (Server-Sent Events)

購読ごとにスナップショットを1件だけ送って閉じる。
stock は乱数のプレースホルダーで、ストアの変更通知にはまだ繋いでいない。
"""

import asyncio
import json
import random
from datetime import datetime, timezone
from typing import AsyncIterator

from pydantic import BaseModel, ConfigDict, Field

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-API-Key",
}


class StockSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(serialization_alias="productId")
    stock: int
    last_updated: datetime = Field(serialization_alias="lastUpdated")


def make_snapshot(product_id: str) -> StockSnapshot:
    return StockSnapshot(
        product_id=product_id,
        stock=random.randint(10, 59),
        last_updated=datetime.now(timezone.utc),
    )


def format_sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def subscribe(product_id: str, close_delay: float) -> AsyncIterator[str]:
    snapshot = make_snapshot(product_id)
    yield format_sse(snapshot.model_dump(mode="json", by_alias=True))
    await asyncio.sleep(close_delay)
