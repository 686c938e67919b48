"""
Inventory Service — FastAPI エントリーポイント

在庫の参照・更新、カート単位の引き当て、在庫ストリームを提供する。
正はデータベース。このサービスは在庫数をリクエストをまたいで保持しない。

┌────────────┐   POST /inventory    ┌───────────────────┐     ┌────────────┐
│ Storefront │ ───────────────────▶ │ Inventory Service │ ──▶ │ PostgreSQL │
│  / Admin   │ ◀── GET /inventory ─ │                   │     └────────────┘
└────────────┘                      └─────────┬─────────┘
                                              │ inventory_events
                                              ▼ (Redis Pub/Sub)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

import pydantic
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from . import commands, db, movements, queries, reservations, stream
from .config import get_settings
from .errors import InventoryError, NotFound, ValidationError
from .models import (
    BulkUpdateCommand,
    ReleaseCommand,
    ReserveCommand,
    UpdateStockCommand,
    describe_errors,
)
from .schema import create_schema

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.init_schema:
        await create_schema(db.get_engine())
        logger.info("Inventory schema ensured")

    if settings.events_enabled:
        redis_pool = aioredis.from_url(settings.redis_url, decode_responses=True)

    logger.info("Inventory Service started")
    yield

    if redis_pool is not None:
        await redis_pool.aclose()
        redis_pool = None
    await db.dispose_engine()
    logger.info("Inventory Service shutting down")


app = FastAPI(title="Inventory Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error Handlers ──────────────────────────────


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


def parse(model: type[pydantic.BaseModel], payload: dict[str, Any]):
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(describe_errors(e)) from e


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/inventory")
async def get_inventory(productId: str | None = None):
    """productId 指定時はサイズ別の有効在庫、未指定時は在庫僅少の一覧"""
    async with db.session_scope() as session:
        if productId:
            inventory = await queries.get_inventory_for_product(session, productId)
            return {"inventory": inventory}
        return {"lowStockItems": await queries.get_low_stock_items(session)}


@app.get("/inventory/{inventory_id}/movements")
async def get_movements(inventory_id: str):
    """在庫行の移動台帳（監査用）"""
    async with db.session_scope() as session:
        if not await queries.get_inventory_by_id(session, inventory_id):
            raise NotFound("Inventory record not found")
        return {"movements": await movements.list_movements(session, inventory_id)}


# ── Command Endpoint (Write 側) ──────────────────


@app.post("/inventory")
async def post_inventory(payload: dict[str, Any]):
    """action に応じて在庫を更新する"""
    settings = get_settings()
    action = payload.get("action")

    if action == "update_stock":
        cmd = parse(UpdateStockCommand, payload)
        async with db.session_scope() as session:
            inventory = await commands.update_stock(
                session,
                redis_pool,
                cmd.product_id,
                cmd.size,
                cmd.quantity,
                cmd.movement_type or movements.MovementType.ADJUSTMENT,
                cmd.notes,
                settings.low_stock_threshold_default,
            )
        return {"success": True, "inventory": inventory}

    if action == "bulk_update":
        cmd = parse(BulkUpdateCommand, payload)
        async with db.session_scope() as session:
            results = await commands.bulk_update(
                session, redis_pool, cmd.updates, settings.low_stock_threshold_default
            )
        return {"results": results}

    if action == "cleanup_reservations":
        async with db.session_scope() as session:
            expired = await reservations.cleanup_expired_reservations(session, redis_pool)
        return {"success": True, "expired": expired}

    if action == "reserve":
        cmd = parse(ReserveCommand, payload)
        async with db.session_scope() as session:
            success = await reservations.reserve_inventory(
                session,
                redis_pool,
                cmd.cart_id,
                cmd.product_id,
                cmd.size,
                cmd.quantity,
                settings.reservation_ttl_minutes,
            )
        return {"success": success}

    if action == "release_reservations":
        cmd = parse(ReleaseCommand, payload)
        async with db.session_scope() as session:
            released = await reservations.release_cart_reservations(
                session, redis_pool, cmd.cart_id
            )
        return {"success": True, "released": released}

    raise ValidationError("Invalid action")


# ── Stream ───────────────────────────────────────


@app.get("/inventory/{product_id}/subscribe")
async def subscribe_inventory(product_id: str):
    """在庫スナップショットを1件送って閉じる SSE"""
    return StreamingResponse(
        stream.subscribe(product_id, get_settings().stream_close_delay_seconds),
        media_type="text/event-stream",
        headers=stream.SSE_HEADERS,
    )


@app.options("/inventory/{product_id}/subscribe")
async def subscribe_preflight(product_id: str):
    return Response(status_code=200, headers=stream.PREFLIGHT_HEADERS)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "inventory-service"}
