"""
Moteur de cohérence de stock.

Quatre opérations, chacune est une saga de lectures/écritures unitaires :
    commit          débit (création de vente), pré-contrôle consultatif
    release         crédit (suppression de vente / compensation)
    delta_reconcile édition de vente, même stock : seul le net est appliqué
    move            édition de vente, stock changé : release + commit,
                    avec compensation si le commit échoue

Aucune exception pour les échecs métier : tout revient dans le résultat.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from petshop.app.db.models.core_types import MovementType
from petshop.services.stock_applier import StockApplier
from petshop.services.stock_calculator import aggregate_quantities, compute_delta
from petshop.services.stock_store import StockRecordStore
from petshop.services.stock_types import (
    Deficiency,
    DeficiencyReason,
    Divergence,
    InventoryResult,
    MovementNote,
    MoveOutcome,
    MoveResult,
    StockDelta,
    StockStoreError,
    format_qty,
)

logger = logging.getLogger(__name__)


def movement_reason(label: str, ref) -> str:
    """Libellé d'historique : "Sale #12", "Sale #VEN202610190042"..."""
    return f"{label} #{ref}" if ref is not None else label


class InventoryEngine:
    def __init__(self, store: StockRecordStore, *, max_attempts: int | None = None):
        self.store = store
        self.applier = StockApplier(store, max_attempts=max_attempts)

    # ---------- PRÉ-CONTRÔLE ----------
    def check_availability(self, items: Iterable, stockroom_id: int) -> list[Deficiency]:
        """
        Liste complète des manques (jamais d'arrêt au premier).
        Consultatif : rien n'est verrouillé entre ce contrôle et l'écriture.
        """
        deficiencies = []
        for pid, requested in aggregate_quantities(items).items():
            try:
                reading = self.store.get(pid, stockroom_id)
            except StockStoreError:
                deficiencies.append(Deficiency(pid, requested, None, DeficiencyReason.unavailable))
                continue

            if reading is None:
                deficiencies.append(Deficiency(pid, requested, None, DeficiencyReason.not_configured))
            elif requested > reading.quantity:
                deficiencies.append(Deficiency(pid, requested, reading.quantity, DeficiencyReason.insufficient))
        return deficiencies

    # ---------- OPÉRATIONS ----------
    def commit(
        self,
        items: Iterable,
        stockroom_id: int,
        *,
        sale_id: int | None = None,
        reference: str | None = None,
    ) -> InventoryResult:
        """`reference` remplace l'id dans le libellé quand la vente n'existe pas encore."""
        items = list(items)
        deficiencies = self.check_availability(items, stockroom_id)
        if deficiencies:
            logger.info(
                "Commit refused by pre-check (stockroom_id=%s, sale_id=%s, deficiencies=%s)",
                stockroom_id,
                sale_id,
                len(deficiencies),
            )
            return InventoryResult(
                stockroom_id=stockroom_id,
                errors=[d.message for d in deficiencies],
                deficiencies=deficiencies,
            )

        deltas = [StockDelta(pid, -qty) for pid, qty in aggregate_quantities(items).items()]
        result = self.applier.apply(
            deltas,
            stockroom_id,
            note=MovementNote(
                MovementType.sale,
                sale_id,
                movement_reason("Sale", sale_id if reference is None else reference),
            ),
        )
        if not result.success:
            # pré-contrôle passé mais écriture refusée : un autre débit s'est intercalé
            logger.warning(
                "Commit partially applied (stockroom_id=%s, sale_id=%s, applied=%s, failed=%s)",
                stockroom_id,
                sale_id,
                len(result.applied),
                len(result.failed),
            )
        return result

    def release(self, items: Iterable, stockroom_id: int, *, sale_id: int | None = None) -> InventoryResult:
        deltas = [StockDelta(pid, qty) for pid, qty in aggregate_quantities(items).items()]
        result = self.applier.apply(
            deltas,
            stockroom_id,
            note=MovementNote(MovementType.reversal, sale_id, movement_reason("Sale reversal", sale_id)),
        )
        if not result.success:
            logger.warning(
                "Release incomplete (stockroom_id=%s, sale_id=%s): %s",
                stockroom_id,
                sale_id,
                "; ".join(result.errors),
            )
        return result

    def delta_reconcile(
        self,
        old_items: Iterable,
        new_items: Iterable,
        stockroom_id: int,
        *,
        sale_id: int | None = None,
    ) -> InventoryResult:
        deltas = compute_delta(old_items, new_items)
        if not deltas:
            return InventoryResult(stockroom_id=stockroom_id)

        result = self.applier.apply(
            deltas,
            stockroom_id,
            note=MovementNote(MovementType.adjustment, sale_id, movement_reason("Sale update", sale_id)),
        )
        if not result.success:
            logger.warning(
                "Delta reconcile incomplete (stockroom_id=%s, sale_id=%s): %s",
                stockroom_id,
                sale_id,
                "; ".join(result.errors),
            )
        return result

    def move(
        self,
        old_items: Iterable,
        old_stockroom_id: int,
        new_items: Iterable,
        new_stockroom_id: int,
        *,
        sale_id: int | None = None,
    ) -> MoveResult:
        old_items = list(old_items)

        release = self.release(old_items, old_stockroom_id, sale_id=sale_id)
        if not release.success:
            # rien n'est encore débité dans le nouveau stock
            return MoveResult(outcome=MoveOutcome.release_failed, release=release)

        commit = self.commit(new_items, new_stockroom_id, sale_id=sale_id)
        if commit.success:
            logger.info(
                "Sale stock moved (sale_id=%s, from=%s, to=%s)",
                sale_id,
                old_stockroom_id,
                new_stockroom_id,
            )
            return MoveResult(outcome=MoveOutcome.moved, release=release, commit=commit)

        # ---------- COMPENSATION ----------
        compensation = []
        divergences = []

        if commit.applied:
            undo = self.revert(commit, sale_id=sale_id)
            compensation.append(undo)
            divergences.extend(self.divergences(commit, undo))

        redebit = self.revert(release, sale_id=sale_id)
        compensation.append(redebit)
        divergences.extend(self.divergences(release, redebit))

        outcome = MoveOutcome.diverged if divergences else MoveOutcome.compensated
        if divergences:
            for d in divergences:
                logger.error("STOCK DIVERGENCE (sale_id=%s): %s", sale_id, d.message)
        else:
            logger.warning(
                "Sale stock move failed and was compensated (sale_id=%s, from=%s, to=%s)",
                sale_id,
                old_stockroom_id,
                new_stockroom_id,
            )

        return MoveResult(
            outcome=outcome,
            release=release,
            commit=commit,
            compensation=compensation,
            divergences=divergences,
        )

    # ---------- COMPENSATION ----------
    def revert(self, result: InventoryResult, *, sale_id: int | None = None) -> InventoryResult:
        """Applique l'inverse de chaque ajustement APPLIQUÉ d'un résultat, dans le même stock."""
        deltas = [StockDelta(a.product_id, -a.delta) for a in result.applied if a.delta != 0]
        return self.applier.apply(
            deltas,
            result.stockroom_id,
            note=MovementNote(MovementType.compensation, sale_id, movement_reason("Compensation", sale_id)),
        )

    @staticmethod
    def divergences(original: InventoryResult, reversal: InventoryResult) -> list[Divergence]:
        """
        Lignes que la compensation n'a pas pu remettre en place.
        Quantité attendue = quantité d'avant l'ajustement d'origine.
        """
        applied = {a.product_id: a for a in original.applied}
        divergences = []
        for failed in reversal.failed:
            source = applied.get(failed.product_id)
            if source is None or source.resulting_quantity is None:
                continue
            expected = Decimal(source.resulting_quantity) - Decimal(source.delta)
            divergences.append(
                Divergence(
                    stockroom_id=original.stockroom_id,
                    product_id=failed.product_id,
                    expected_quantity=expected,
                    message=(
                        f"manual correction required: stockroom {original.stockroom_id}, "
                        f"product {failed.product_id} should be at {format_qty(expected)} ({failed.error})"
                    ),
                )
            )
        return divergences
