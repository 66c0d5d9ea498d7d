from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from petshop.app.api.deps import get_db, get_inventory_engine
from petshop.app.core.config import settings
from petshop.app.db.models.core_types import MovementType
from petshop.app.db.models.models_v1 import Product, StockMovement, StockRecord, Stockroom
from petshop.app.schemas.stock_record import StockMovementRead, StockRecordRead, StockRecordSet
from petshop.services.inventory import InventoryEngine
from petshop.services.stock_types import MovementNote

router = APIRouter(prefix="/stock")


# ---------- Helpers ----------
def _create_stock_record(db: Session, product_id: int, stockroom_id: int, quantity: Decimal, reason: str) -> None:
    db.add(
        StockRecord(
            product_id=product_id,
            stockroom_id=stockroom_id,
            quantity=quantity,
            version=1,
        )
    )
    db.add(
        StockMovement(
            product_id=product_id,
            stockroom_id=stockroom_id,
            movement_type=MovementType.adjustment,
            previous_quantity=Decimal(0),
            new_quantity=quantity,
            change=quantity,
            reason=reason,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Stock record created concurrently, retry")


# ---------- Endpoints ----------
@router.get(
    "",
    response_model=list[StockRecordRead],
)
def get_stock(
    stockroom_id: int | None = None,
    product_id: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - une ligne par couple (produit, stock) configuré
    - version = jeton optimiste, jamais modifiable à la main
    """

    stmt = (
        select(StockRecord)
        .join(Product, Product.id == StockRecord.product_id)
        .order_by(StockRecord.stockroom_id, Product.sku)
    )

    if stockroom_id is not None:
        stmt = stmt.where(StockRecord.stockroom_id == stockroom_id)

    if product_id is not None:
        stmt = stmt.where(StockRecord.product_id == product_id)

    return db.execute(stmt).scalars().all()


@router.get(
    "/history",
    response_model=list[StockMovementRead],
)
def get_stock_history(
    product_id: int | None = None,
    stockroom_id: int | None = None,
    limit: int = Query(default=settings.stock_history_limit, ge=1, le=500),
    db: Session = Depends(get_db),
):
    stmt = select(StockMovement).order_by(StockMovement.created_at.desc(), StockMovement.id.desc())

    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)

    if stockroom_id is not None:
        stmt = stmt.where(StockMovement.stockroom_id == stockroom_id)

    return db.execute(stmt.limit(limit)).scalars().all()


@router.put(
    "/{stockroom_id}/{product_id}",
    response_model=StockRecordRead,
)
def set_stock(
    stockroom_id: int,
    product_id: int,
    payload: StockRecordSet,
    db: Session = Depends(get_db),
    inventory: InventoryEngine = Depends(get_inventory_engine),
):
    """
    Configuration / ajustement manuel (inventaire physique).
    Seul endroit où une ligne de stock peut être créée.
    """
    if not db.get(Stockroom, stockroom_id):
        raise HTTPException(status_code=404, detail="Stockroom not found")
    if not db.get(Product, product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    reason = payload.reason or "Manual adjustment"
    reading = inventory.store.get(product_id, stockroom_id)
    if reading is None:
        _create_stock_record(db, product_id, stockroom_id, payload.quantity, reason)
    elif not inventory.store.set(
        product_id,
        stockroom_id,
        payload.quantity,
        expected_version=reading.version,
        note=MovementNote(MovementType.adjustment, reason=reason),
    ):
        # une vente a écrit la ligne entre la lecture et l'écriture
        raise HTTPException(status_code=409, detail="Stock record changed concurrently, retry")

    db.expire_all()
    return db.get(StockRecord, (product_id, stockroom_id))
