"""
Inventory Service — カート在庫の引き当て (Reservation Gateway)

引き当て(Reserve)・解放(Release)・期限切れの掃除(Cleanup)を処理する。

原子性はストア側の条件付き UPDATE 1文で担保する:

    UPDATE inventory SET reserved_quantity = reserved_quantity + :q
    WHERE ... AND stock_quantity - reserved_quantity >= :q

読んでから書く (read-then-write) 形にはしない。複数インスタンスで
同時に引き当てても過剰販売にならないのはこの1文だけが判定を行うため。
プロセス内ロックは使わない。
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import redis.asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from . import events
from .errors import ValidationError

logger = logging.getLogger(__name__)


async def reserve_inventory(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    cart_id: str,
    product_id: str,
    size: str,
    quantity: int,
    ttl_minutes: int,
) -> bool:
    """
    在庫引き当てコマンド

    有効在庫 >= quantity のときだけ reserved_quantity を増やし、
    引き当て行を記録する。足りなければ何も変えずに False を返す。
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=ttl_minutes)

    result = await session.execute(
        text("""
            UPDATE inventory
            SET reserved_quantity = reserved_quantity + :qty, updated_at = :now
            WHERE product_id = :product_id
              AND size = :size
              AND stock_quantity - reserved_quantity >= :qty
            RETURNING id
        """),
        {"qty": quantity, "now": now, "product_id": product_id, "size": size},
    )
    row = result.fetchone()

    if not row:
        await session.rollback()
        logger.info(
            "Reservation rejected: cart=%s product=%s size=%s qty=%d",
            cart_id, product_id, size, quantity,
        )
        await events.publish(
            redis,
            events.InventoryReservationFailed(
                cart_id=cart_id,
                product_id=product_id,
                size=size,
                quantity_requested=quantity,
                timestamp=now,
            ),
        )
        return False

    await session.execute(
        text("""
            INSERT INTO inventory_reservations
                (id, cart_id, inventory_id, product_id, size, quantity,
                 status, expires_at, created_at)
            VALUES
                (:id, :cart_id, :inventory_id, :product_id, :size, :qty,
                 'active', :expires_at, :now)
        """),
        {
            "id": str(uuid4()),
            "cart_id": cart_id,
            "inventory_id": row.id,
            "product_id": product_id,
            "size": size,
            "qty": quantity,
            "expires_at": expires_at,
            "now": now,
        },
    )
    await session.commit()

    logger.info(
        "Reserved %d of %s/%s for cart %s", quantity, product_id, size, cart_id
    )
    await events.publish(
        redis,
        events.InventoryReserved(
            cart_id=cart_id,
            product_id=product_id,
            size=size,
            quantity=quantity,
            expires_at=expires_at,
            timestamp=now,
        ),
    )
    return True


def totals_by_inventory(released_rows) -> list[tuple[str, int]]:
    """在庫行ごとに数量を合算し、inventory_id 順に並べる。"""
    totals: dict[str, int] = {}
    for r in released_rows:
        totals[r.inventory_id] = totals.get(r.inventory_id, 0) + r.quantity
    return sorted(totals.items())


async def _give_back(session: AsyncSession, released_rows, now: datetime) -> None:
    # 在庫行のロックは常に inventory_id の昇順で取る
    for inventory_id, quantity in totals_by_inventory(released_rows):
        await session.execute(
            text("""
                UPDATE inventory
                SET reserved_quantity = reserved_quantity - :qty, updated_at = :now
                WHERE id = :id
            """),
            {"qty": quantity, "now": now, "id": inventory_id},
        )


async def release_cart_reservations(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    cart_id: str,
) -> int:
    """
    カートの有効な引き当てをすべて解放する。

    先に引き当て行の status を切り替え、切り替えた行の数量だけを戻す。
    同じカートを2回解放しても2回目は対象行がなく何も起きない（冪等）。
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(
        text("""
            UPDATE inventory_reservations
            SET status = 'released', released_at = :now
            WHERE cart_id = :cart_id AND status = 'active'
            RETURNING inventory_id, quantity
        """),
        {"now": now, "cart_id": cart_id},
    )
    released_rows = result.fetchall()
    await _give_back(session, released_rows, now)
    await session.commit()

    if released_rows:
        logger.info("Released %d reservations for cart %s", len(released_rows), cart_id)
        await events.publish(
            redis,
            events.InventoryReleased(
                cart_id=cart_id, released=len(released_rows), timestamp=now
            ),
        )
    return len(released_rows)


async def cleanup_expired_reservations(
    session: AsyncSession,
    redis: aioredis.Redis | None,
    now: datetime | None = None,
) -> int:
    """
    期限切れの引き当てを解放する。

    定期実行は外部のスケジューラから HTTP 経由で呼ばれる想定。
    """
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        text("""
            UPDATE inventory_reservations
            SET status = 'expired', released_at = :now
            WHERE status = 'active' AND expires_at < :now
            RETURNING inventory_id, quantity
        """),
        {"now": now},
    )
    expired_rows = result.fetchall()
    await _give_back(session, expired_rows, now)
    await session.commit()

    logger.info("Expired %d reservations", len(expired_rows))
    if expired_rows:
        await events.publish(
            redis, events.ReservationsExpired(expired=len(expired_rows), timestamp=now)
        )
    return len(expired_rows)
