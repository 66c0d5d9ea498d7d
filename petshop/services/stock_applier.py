from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from petshop.app.core.config import settings
from petshop.services.stock_store import StockRecordStore
from petshop.services.stock_types import (
    AdjustmentOutcome,
    InventoryResult,
    MovementNote,
    StockAdjustment,
    StockDelta,
    StockStoreError,
    format_qty,
)

logger = logging.getLogger(__name__)


class StockApplier:
    """
    Applique une liste de deltas signés sur UN stock.

    Propriétés :
    - chaque delta reçoit un verdict (pas d'arrêt au premier échec)
    - un débit qui rendrait la quantité négative est refusé, la ligne n'est pas touchée
    - une ligne absente est une erreur ("stock not configured"), jamais créée ici
    - écriture conditionnelle sur la version lue, retry borné par ligne en cas de conflit
    - une panne du store est un échec de la ligne, pas de retry

    Une application partielle est possible et remontée telle quelle :
    la compensation est l'affaire de l'appelant.
    """

    def __init__(self, store: StockRecordStore, *, max_attempts: int | None = None):
        self.store = store
        self.max_attempts = max(1, max_attempts or settings.stock_write_max_attempts)

    def apply(
        self,
        deltas: Iterable[StockDelta],
        stockroom_id: int,
        *,
        note: MovementNote | None = None,
    ) -> InventoryResult:
        result = InventoryResult(stockroom_id=stockroom_id)
        for d in deltas:
            result.add(self._apply_one(int(d.product_id), Decimal(d.delta), stockroom_id, note))
        return result

    def _apply_one(
        self,
        product_id: int,
        delta: Decimal,
        stockroom_id: int,
        note: MovementNote | None,
    ) -> StockAdjustment:
        for attempt in range(1, self.max_attempts + 1):
            try:
                reading = self.store.get(product_id, stockroom_id)
            except StockStoreError as exc:
                return _failed(product_id, delta, None, f"stock store unavailable for product {product_id}: {exc}")

            if reading is None:
                return _failed(
                    product_id,
                    delta,
                    None,
                    f"stock not configured for product {product_id} in stockroom {stockroom_id}",
                )

            if delta == 0:
                return StockAdjustment(product_id, delta, reading.quantity, AdjustmentOutcome.applied)

            new_qty = reading.quantity + delta
            if delta < 0 and new_qty < 0:
                return _failed(
                    product_id,
                    delta,
                    reading.quantity,
                    f"insufficient stock for product {product_id}: "
                    f"available {format_qty(reading.quantity)}, requested {format_qty(-delta)}",
                )

            try:
                written = self.store.set(
                    product_id,
                    stockroom_id,
                    new_qty,
                    expected_version=reading.version,
                    note=note,
                )
            except StockStoreError as exc:
                return _failed(
                    product_id, delta, reading.quantity, f"stock store unavailable for product {product_id}: {exc}"
                )

            if written:
                return StockAdjustment(product_id, delta, new_qty, AdjustmentOutcome.applied)

            logger.warning(
                "Stock version conflict (product_id=%s, stockroom_id=%s, attempt %s/%s)",
                product_id,
                stockroom_id,
                attempt,
                self.max_attempts,
            )

        return _failed(
            product_id,
            delta,
            None,
            f"concurrent update conflict for product {product_id}: gave up after {self.max_attempts} attempts",
        )


def _failed(product_id: int, delta: Decimal, quantity: Decimal | None, error: str) -> StockAdjustment:
    return StockAdjustment(product_id, delta, quantity, AdjustmentOutcome.failed, error)
