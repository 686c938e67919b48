"""
Inventory Service — 有効在庫の算出

available = stock_quantity - reserved_quantity
予約数が在庫数を超えていても (過剰販売) 0 に丸めない。
負の値のまま返すことでバグを表面化させる。
"""

from typing import NamedTuple


class Availability(NamedTuple):
    available_quantity: int
    is_low_stock: bool


def calculate(
    stock_quantity: int,
    reserved_quantity: int,
    low_stock_threshold: int,
) -> Availability:
    available = stock_quantity - reserved_quantity
    return Availability(available, available <= low_stock_threshold)


def with_availability(record: dict) -> dict:
    """在庫行に available_quantity と is_low_stock を付け加えた dict を返す。"""
    availability = calculate(
        record["stock_quantity"],
        record["reserved_quantity"],
        record["low_stock_threshold"],
    )
    return {**record, **availability._asdict()}
