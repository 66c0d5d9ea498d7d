"""
Sales service.

Ce module orchestre le cycle de vie des ventes (création, édition, suppression)
mais ne contient AUCUNE logique de calcul de stock.

Toute la logique stock est centralisée dans :
    petshop.services.inventory

Règle : la vente n'est jamais persistée avec des lignes que le stock ne
reflète pas. Si le moteur échoue, on annule la partie appliquée (revert)
et on refuse ; si l'annulation échoue elle-même, c'est une divergence.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from petshop.app.db.models.core_types import MovementType
from petshop.app.db.models.models_v1 import Product, Sale, SaleItem, StockMovement, Stockroom
from petshop.app.schemas.sale import SaleCreate, SaleItemIn, SaleUpdate
from petshop.services.inventory import InventoryEngine, movement_reason
from petshop.services.stock_types import Divergence, InventoryResult, LineItem, MoveResult

logger = logging.getLogger(__name__)


# ---------- Erreurs ----------
class SaleError(Exception):
    status_code = 400

    def __init__(self, message: str, *, stock: InventoryResult | MoveResult | None = None):
        super().__init__(message)
        self.message = message
        self.stock = stock


class SaleNotFound(SaleError):
    status_code = 404


class InvalidSaleRequest(SaleError):
    status_code = 400


class StockRejected(SaleError):
    """Le stock a refusé l'opération ; l'état du stock est inchangé."""

    status_code = 409


class StockDivergence(SaleError):
    """Le stock et la vente ne concordent plus : correction manuelle requise."""

    status_code = 500

    def __init__(self, message: str, divergences: list[Divergence], **kwargs):
        super().__init__(message, **kwargs)
        self.divergences = divergences


@dataclass
class SaleChange:
    sale: Sale | None
    stock: InventoryResult | MoveResult | None = None
    replayed: bool = False


def generate_sale_number(now: datetime | None = None) -> str:
    now = now or datetime.utcnow()
    return f"VEN{now:%Y%m%d}{random.randint(1, 9999):04d}"


def _line_items(items) -> list[LineItem]:
    return [LineItem(int(i.product_id), Decimal(i.quantity)) for i in items]


def _check_discount(items: list[SaleItemIn], discount: Decimal) -> None:
    total = sum((ln.quantity * ln.unit_price for ln in items), Decimal(0))
    if discount > total:
        raise InvalidSaleRequest("Discount cannot exceed the sale total")


class SaleService:
    def __init__(self, db: Session, inventory: InventoryEngine):
        self.db = db
        self.inventory = inventory

    # ---------- Lecture ----------
    def get_sale(self, sale_id: int) -> Sale:
        sale = self.db.get(Sale, sale_id)
        if not sale:
            raise SaleNotFound("Sale not found")
        return sale

    def list_sales(self, *, status=None, stockroom_id: int | None = None, limit: int = 50, offset: int = 0):
        stmt = select(Sale).order_by(Sale.created_at.desc(), Sale.id.desc())
        if status is not None:
            stmt = stmt.where(Sale.status == status)
        if stockroom_id is not None:
            stmt = stmt.where(Sale.stockroom_id == stockroom_id)
        return self.db.execute(stmt.limit(limit).offset(offset)).scalars().all()

    # ---------- Création ----------
    def create_sale(self, payload: SaleCreate, *, idempotency_key: str | None = None) -> SaleChange:
        # idempotent replay
        if idempotency_key:
            existing = self.db.execute(
                select(Sale).where(Sale.idempotency_key == idempotency_key)
            ).scalar_one_or_none()
            if existing:
                return SaleChange(sale=existing, replayed=True)

        self._require_active_stockroom(payload.stockroom_id)
        self._require_products(payload.items)
        _check_discount(payload.items, payload.discount)

        number = generate_sale_number()
        items = _line_items(payload.items)
        stock = self.inventory.commit(items, payload.stockroom_id, reference=number)
        if not stock.success:
            self._rollback_stock(stock, None)
            raise StockRejected("Insufficient stock for this sale", stock=stock)

        sale = Sale(
            number=number,
            stockroom_id=payload.stockroom_id,
            status=payload.status,
            notes=payload.notes,
            idempotency_key=idempotency_key,
        )
        self._fill_items(sale, payload.items, payload.discount)
        self.db.add(sale)
        self._persist_or_rollback_stock([stock], None, link_sale=sale)

        logger.info("Sale created (id=%s, number=%s, stockroom_id=%s)", sale.id, sale.number, sale.stockroom_id)
        return SaleChange(sale=sale, stock=stock)

    # ---------- Édition ----------
    def update_sale(self, sale_id: int, payload: SaleUpdate) -> SaleChange:
        sale = self.get_sale(sale_id)

        old_stockroom_id = sale.stockroom_id
        new_stockroom_id = payload.stockroom_id if payload.stockroom_id is not None else old_stockroom_id
        old_items = _line_items(sale.items)
        new_payload_items = payload.items

        discount = payload.discount if payload.discount is not None else sale.discount

        # validations AVANT toute écriture de stock
        if new_payload_items is not None:
            self._require_products(new_payload_items)
            _check_discount(new_payload_items, discount)
            new_items = _line_items(new_payload_items)
        else:
            if discount > sale.total_amount:
                raise InvalidSaleRequest("Discount cannot exceed the sale total")
            new_items = old_items
        if new_stockroom_id != old_stockroom_id:
            self._require_active_stockroom(new_stockroom_id)

        stock: InventoryResult | MoveResult | None = None
        applied: list[InventoryResult] = []

        if new_payload_items is not None or new_stockroom_id != old_stockroom_id:
            if new_stockroom_id == old_stockroom_id:
                stock = self.inventory.delta_reconcile(old_items, new_items, old_stockroom_id, sale_id=sale.id)
                if not stock.success:
                    self._rollback_stock(stock, sale.id)
                    raise StockRejected("Stock could not be adjusted for this sale update", stock=stock)
                applied = [stock]
            else:
                stock = self.inventory.move(
                    old_items, old_stockroom_id, new_items, new_stockroom_id, sale_id=sale.id
                )
                self._check_move(stock, sale.id)
                applied = [stock.release, stock.commit]

            sale.stockroom_id = new_stockroom_id
            if new_payload_items is not None:
                sale.items.clear()
                self._fill_items(sale, new_payload_items, discount)

        if new_payload_items is None:
            sale.discount = discount
            sale.final_amount = sale.total_amount - discount
        if payload.status is not None:
            sale.status = payload.status
        if payload.notes is not None:
            sale.notes = payload.notes

        self._persist_or_rollback_stock(applied, sale.id)
        logger.info("Sale updated (id=%s)", sale.id)
        return SaleChange(sale=sale, stock=stock)

    # ---------- Suppression ----------
    def delete_sale(self, sale_id: int) -> SaleChange:
        sale = self.get_sale(sale_id)

        stock = None
        if sale.items:
            stock = self.inventory.release(_line_items(sale.items), sale.stockroom_id, sale_id=sale.id)
            if not stock.success:
                self._rollback_stock(stock, sale.id)
                raise StockRejected("Stock could not be credited back for this sale", stock=stock)

        self.db.delete(sale)
        self._persist_or_rollback_stock([stock] if stock else [], sale_id)
        logger.info("Sale deleted (id=%s)", sale_id)
        return SaleChange(sale=None, stock=stock)

    # ---------- Helpers ----------
    def _require_active_stockroom(self, stockroom_id: int) -> Stockroom:
        stockroom = self.db.get(Stockroom, stockroom_id)
        if not stockroom or not stockroom.active:
            raise InvalidSaleRequest("Stockroom is invalid or inactive")
        return stockroom

    def _require_products(self, items: list[SaleItemIn]) -> None:
        # FK checks (fail fast, message clair)
        for ln in items:
            if not self.db.get(Product, ln.product_id):
                raise InvalidSaleRequest(f"Invalid product_id {ln.product_id}")

    @staticmethod
    def _fill_items(sale: Sale, items: list[SaleItemIn], discount: Decimal) -> None:
        total = Decimal(0)
        for ln in items:
            subtotal = ln.quantity * ln.unit_price
            total += subtotal
            sale.items.append(
                SaleItem(
                    product_id=ln.product_id,
                    quantity=ln.quantity,
                    unit_price=ln.unit_price,
                    subtotal=subtotal,
                )
            )
        sale.total_amount = total
        sale.discount = discount
        sale.final_amount = total - discount

    def _check_move(self, result: MoveResult, sale_id: int) -> None:
        if result.success:
            return
        if result.divergences:
            raise StockDivergence(
                "Stock move failed and could not be compensated: manual correction required",
                result.divergences,
                stock=result,
            )
        if result.release.applied and not result.compensation:
            # release partiel : on re-débite l'ancien stock avant de refuser
            self._rollback_stock(result.release, sale_id)
        raise StockRejected(f"Stock move failed ({result.outcome.value})", stock=result)

    def _rollback_stock(self, result: InventoryResult, sale_id: int | None) -> None:
        divergences = self._undo_stock(result, sale_id)
        if divergences:
            raise StockDivergence(
                "Stock operation failed and could not be rolled back: manual correction required",
                divergences,
                stock=result,
            )

    def _undo_stock(self, result: InventoryResult, sale_id: int | None) -> list[Divergence]:
        """Annule la partie appliquée ; renvoie ce qui n'a pas pu être remis en place."""
        if not result.applied:
            return []
        undo = self.inventory.revert(result, sale_id=sale_id)
        divergences = self.inventory.divergences(result, undo)
        for d in divergences:
            logger.error("STOCK DIVERGENCE (sale_id=%s): %s", sale_id, d.message)
        return divergences

    def _persist_or_rollback_stock(
        self,
        results: list[InventoryResult | None],
        sale_id: int | None,
        *,
        link_sale: Sale | None = None,
    ) -> None:
        try:
            if link_sale is not None:
                self._link_sale_movements(link_sale)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Sale persistence failed, rolling back stock (sale_id=%s)", sale_id)
            # ordre inverse : dernier appliqué, premier annulé ; on tente tout
            divergences = []
            for result in reversed([r for r in results if r is not None]):
                divergences.extend(self._undo_stock(result, sale_id))
            if divergences:
                raise StockDivergence(
                    "Sale could not be saved and stock could not be rolled back: manual correction required",
                    divergences,
                ) from exc
            raise

    def _link_sale_movements(self, sale: Sale) -> None:
        # le débit est écrit avant que la vente ait un id : on le rattache dans la même transaction
        self.db.flush()
        self.db.execute(
            update(StockMovement)
            .where(StockMovement.movement_type == MovementType.sale)
            .where(StockMovement.sale_id.is_(None))
            .where(StockMovement.reason == movement_reason("Sale", sale.number))
            .values(sale_id=sale.id)
            .execution_options(synchronize_session=False)
        )
