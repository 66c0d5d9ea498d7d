"""
Types partagés par le moteur de cohérence de stock.

Tout ce qui est ici est éphémère : produit par une opération, renvoyé à
l'appelant, jamais persisté tel quel (la ligne StockRecord modifiée et
l'historique StockMovement sont la trace durable).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal

from petshop.app.db.models.core_types import MovementType


class StockStoreError(Exception):
    """Panne d'infrastructure du store (base injoignable, erreur driver...)."""


def format_qty(value: Decimal) -> str:
    """Decimal('3.000') -> '3', Decimal('2.500') -> '2.5'."""
    return format(Decimal(value).normalize(), "f")


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: Decimal


@dataclass(frozen=True)
class StockDelta:
    product_id: int
    delta: Decimal


@dataclass(frozen=True)
class StockReading:
    quantity: Decimal
    version: int


@dataclass(frozen=True)
class MovementNote:
    """Contexte d'audit attaché à chaque écriture de stock."""

    movement_type: MovementType
    sale_id: int | None = None
    reason: str | None = None


class AdjustmentOutcome(str, enum.Enum):
    applied = "applied"
    failed = "failed"


@dataclass(frozen=True)
class StockAdjustment:
    product_id: int
    delta: Decimal
    resulting_quantity: Decimal | None
    outcome: AdjustmentOutcome
    error: str | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is AdjustmentOutcome.applied


class DeficiencyReason(str, enum.Enum):
    insufficient = "insufficient"
    not_configured = "not_configured"
    unavailable = "unavailable"


@dataclass(frozen=True)
class Deficiency:
    product_id: int
    requested: Decimal
    available: Decimal | None
    reason: DeficiencyReason

    @property
    def message(self) -> str:
        if self.reason is DeficiencyReason.not_configured:
            return f"stock not configured for product {self.product_id}"
        if self.reason is DeficiencyReason.unavailable:
            return f"stock store unavailable for product {self.product_id}"
        return (
            f"insufficient stock for product {self.product_id}: "
            f"available {format_qty(self.available)}, requested {format_qty(self.requested)}"
        )


@dataclass
class InventoryResult:
    stockroom_id: int
    adjustments: list[StockAdjustment] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    deficiencies: list[Deficiency] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def applied(self) -> list[StockAdjustment]:
        return [a for a in self.adjustments if a.applied]

    @property
    def failed(self) -> list[StockAdjustment]:
        return [a for a in self.adjustments if not a.applied]

    def add(self, adjustment: StockAdjustment) -> None:
        self.adjustments.append(adjustment)
        if adjustment.error:
            self.errors.append(adjustment.error)


@dataclass(frozen=True)
class Divergence:
    stockroom_id: int
    product_id: int
    expected_quantity: Decimal
    message: str


class MoveOutcome(str, enum.Enum):
    moved = "moved"
    release_failed = "release_failed"
    compensated = "compensated"
    diverged = "diverged"


@dataclass
class MoveResult:
    outcome: MoveOutcome
    release: InventoryResult
    commit: InventoryResult | None = None
    compensation: list[InventoryResult] = field(default_factory=list)
    divergences: list[Divergence] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome is MoveOutcome.moved

    @property
    def steps(self) -> list[InventoryResult]:
        steps = [self.release]
        if self.commit is not None:
            steps.append(self.commit)
        return steps + self.compensation

    @property
    def errors(self) -> list[str]:
        errors = [e for step in self.steps for e in step.errors]
        errors.extend(d.message for d in self.divergences)
        return errors

    @property
    def adjustments(self) -> list[StockAdjustment]:
        return [a for step in self.steps for a in step.adjustments]
