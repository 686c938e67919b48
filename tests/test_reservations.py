"""Reservation gateway tests: atomic reserve, idempotent release, expiry cleanup"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import text

from inventory_service import db, queries, reservations
from inventory_service.errors import ValidationError

pytestmark = pytest.mark.asyncio


async def _record(product_id="P1", size="42R"):
    async with db.session_scope() as s:
        return await queries.get_inventory_record(s, product_id, size)


async def _reserve(cart_id, quantity, product_id="P1", size="42R", ttl=15, redis=None):
    async with db.session_scope() as s:
        return await reservations.reserve_inventory(
            s, redis, cart_id, product_id, size, quantity, ttl
        )


async def _release(cart_id, redis=None):
    async with db.session_scope() as s:
        return await reservations.release_cart_reservations(s, redis, cart_id)


async def test_reservation_scenario(seed_inventory):
    await seed_inventory("P1", "42R", stock=10, reserved=3, threshold=5)

    record = await _record()
    assert record["available_quantity"] == 7
    assert record["is_low_stock"] is False

    assert await _reserve("cart-a", 8) is False
    assert (await _record())["reserved_quantity"] == 3

    assert await _reserve("cart-a", 7) is True
    record = await _record()
    assert record["reserved_quantity"] == 10
    assert record["available_quantity"] == 0
    assert record["is_low_stock"] is True


async def test_reserve_unknown_row_fails(store):
    assert await _reserve("cart-a", 1, product_id="missing") is False


@pytest.mark.parametrize("quantity", [0, -2])
async def test_reserve_rejects_non_positive_quantity(seed_inventory, quantity):
    await seed_inventory("P1", "42R", stock=10)
    with pytest.raises(ValidationError):
        await _reserve("cart-a", quantity)


async def test_concurrent_reserves_never_oversell(seed_inventory):
    await seed_inventory("P1", "42R", stock=3)

    results = await asyncio.gather(*(_reserve(f"cart-{i}", 1) for i in range(8)))

    assert results.count(True) == 3
    assert results.count(False) == 5
    record = await _record()
    assert record["reserved_quantity"] == 3
    assert record["available_quantity"] == 0


async def test_release_gives_back_and_is_idempotent(seed_inventory, session):
    await seed_inventory("P1", "42R", stock=10)
    await seed_inventory("P1", "44R", stock=10)
    assert await _reserve("cart-a", 2)
    assert await _reserve("cart-a", 1, size="44R")
    assert await _reserve("cart-b", 4)

    assert await _release("cart-a") == 2
    after_first = (await _record("P1", "42R"), await _record("P1", "44R"))
    assert after_first[0]["reserved_quantity"] == 4
    assert after_first[1]["reserved_quantity"] == 0

    assert await _release("cart-a") == 0
    after_second = (await _record("P1", "42R"), await _record("P1", "44R"))
    assert [r["reserved_quantity"] for r in after_second] == [4, 0]

    result = await session.execute(
        text("SELECT status FROM inventory_reservations WHERE cart_id = 'cart-a'")
    )
    assert {row.status for row in result.fetchall()} == {"released"}


async def test_release_unknown_cart_is_noop(store):
    assert await _release("nobody") == 0


async def test_cleanup_expires_only_stale_reservations(seed_inventory):
    await seed_inventory("P1", "42R", stock=10)
    assert await _reserve("stale-cart", 3, ttl=0)
    assert await _reserve("live-cart", 2, ttl=60)

    later = datetime.now(timezone.utc) + timedelta(seconds=1)
    async with db.session_scope() as s:
        expired = await reservations.cleanup_expired_reservations(s, None, now=later)

    assert expired == 1
    assert (await _record())["reserved_quantity"] == 2

    # expired reservations are no longer released with the cart
    assert await _release("stale-cart") == 0
    assert await _release("live-cart") == 1
    assert (await _record())["reserved_quantity"] == 0


async def test_reserve_publishes_events(seed_inventory, redis_mock):
    await seed_inventory("P1", "42R", stock=1)

    assert await _reserve("cart-a", 1, redis=redis_mock)
    assert not await _reserve("cart-b", 1, redis=redis_mock)

    channels = [c.args[0] for c in redis_mock.publish.await_args_list]
    types = [json.loads(c.args[1])["event_type"] for c in redis_mock.publish.await_args_list]
    assert channels == ["inventory_events", "inventory_events"]
    assert types == ["InventoryReserved", "InventoryReservationFailed"]


async def test_publish_failure_does_not_fail_reserve(seed_inventory, redis_mock):
    await seed_inventory("P1", "42R", stock=5)
    redis_mock.publish.side_effect = ConnectionError("redis down")

    assert await _reserve("cart-a", 2, redis=redis_mock) is True
    assert (await _record())["reserved_quantity"] == 2


async def test_give_back_totals_are_summed_and_sorted():
    rows = [
        SimpleNamespace(inventory_id="inv-b", quantity=2),
        SimpleNamespace(inventory_id="inv-a", quantity=1),
        SimpleNamespace(inventory_id="inv-b", quantity=3),
    ]
    assert reservations.totals_by_inventory(rows) == [("inv-a", 1), ("inv-b", 5)]


async def test_concurrent_releases_across_shared_rows(seed_inventory):
    await seed_inventory("P1", "42R", stock=10)
    await seed_inventory("P1", "44R", stock=10)
    # carts touch the same rows in opposite order
    assert await _reserve("cart-a", 2, size="42R")
    assert await _reserve("cart-a", 1, size="44R")
    assert await _reserve("cart-a", 1, size="42R")
    assert await _reserve("cart-b", 3, size="44R")
    assert await _reserve("cart-b", 4, size="42R")

    released = await asyncio.gather(_release("cart-a"), _release("cart-b"))

    assert sorted(released) == [2, 3]
    assert (await _record("P1", "42R"))["reserved_quantity"] == 0
    assert (await _record("P1", "44R"))["reserved_quantity"] == 0
