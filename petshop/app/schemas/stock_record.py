from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from petshop.app.db.models.core_types import MovementType


class StockRecordRead(BaseModel):
    product_id: int
    stockroom_id: int

    quantity: Decimal
    version: int  # jeton optimiste, READ ONLY
    updated_at: datetime

    class Config:
        from_attributes = True


class StockRecordSet(BaseModel):
    quantity: Decimal = Field(ge=0)
    reason: str | None = Field(default=None, max_length=255)


class StockMovementRead(BaseModel):
    id: int
    product_id: int
    stockroom_id: int
    movement_type: MovementType
    previous_quantity: Decimal
    new_quantity: Decimal
    change: Decimal
    sale_id: int | None
    reason: str | None
    created_at: datetime

    class Config:
        from_attributes = True
