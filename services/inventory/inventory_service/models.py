"""
Inventory Service — リクエストモデル

POST /inventory は action ごとに本文の形が違うので、
action を見てから対応するモデルで検証する。
フィールド名はストアフロント側に合わせて camelCase。
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .movements import MovementType


class ActionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UpdateStockCommand(ActionModel):
    product_id: str = Field(alias="productId", min_length=1)
    size: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    movement_type: MovementType | None = Field(default=None, alias="movementType")
    notes: str | None = None


class BulkUpdateItem(ActionModel):
    product_id: str = Field(alias="productId", min_length=1)
    size: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    low_stock_threshold: int | None = Field(default=None, alias="lowStockThreshold", ge=0)


class BulkUpdateCommand(ActionModel):
    updates: list[Any]


class ReserveCommand(ActionModel):
    cart_id: str = Field(alias="cartId", min_length=1)
    product_id: str = Field(alias="productId", min_length=1)
    size: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class ReleaseCommand(ActionModel):
    cart_id: str = Field(alias="cartId", min_length=1)


def describe_errors(exc) -> str:
    """pydantic の ValidationError を1行のメッセージにする。"""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
