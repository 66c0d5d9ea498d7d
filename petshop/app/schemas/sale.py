from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from petshop.app.db.models.core_types import SaleStatus


class SaleItemIn(BaseModel):
    product_id: int
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class SaleCreate(BaseModel):
    stockroom_id: int
    items: list[SaleItemIn] = Field(min_length=1)
    discount: Decimal = Field(default=Decimal(0), ge=0)
    status: SaleStatus = SaleStatus.pending
    notes: str | None = None


class SaleUpdate(BaseModel):
    """Tous les champs optionnels : seuls items / stockroom_id touchent le stock."""

    stockroom_id: int | None = None
    items: list[SaleItemIn] | None = Field(default=None, min_length=1)
    discount: Decimal | None = Field(default=None, ge=0)
    status: SaleStatus | None = None
    notes: str | None = None


class SaleItemRead(BaseModel):
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class SaleRead(BaseModel):
    id: int
    number: str
    stockroom_id: int
    status: SaleStatus
    total_amount: Decimal
    discount: Decimal
    final_amount: Decimal
    notes: str | None
    created_at: datetime
    updated_at: datetime
    items: list[SaleItemRead]

    class Config:
        from_attributes = True
