from decimal import Decimal

from pydantic import BaseModel

from petshop.services.stock_types import AdjustmentOutcome, DeficiencyReason, MoveOutcome


class StockAdjustmentRead(BaseModel):
    product_id: int
    delta: Decimal
    resulting_quantity: Decimal | None
    outcome: AdjustmentOutcome
    error: str | None = None

    class Config:
        from_attributes = True


class DeficiencyRead(BaseModel):
    product_id: int
    requested: Decimal
    available: Decimal | None
    reason: DeficiencyReason
    message: str

    class Config:
        from_attributes = True


class InventoryResultRead(BaseModel):
    """Sortie commune des opérations de stock (succès, erreurs, détail par ligne)."""

    stockroom_id: int
    success: bool
    errors: list[str]
    adjustments: list[StockAdjustmentRead]
    deficiencies: list[DeficiencyRead] = []

    class Config:
        from_attributes = True


class DivergenceRead(BaseModel):
    stockroom_id: int
    product_id: int
    expected_quantity: Decimal
    message: str

    class Config:
        from_attributes = True


class MoveResultRead(BaseModel):
    outcome: MoveOutcome
    success: bool
    errors: list[str]
    release: InventoryResultRead
    commit: InventoryResultRead | None = None
    compensation: list[InventoryResultRead] = []
    divergences: list[DivergenceRead] = []

    class Config:
        from_attributes = True
