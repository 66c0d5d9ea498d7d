from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from petshop.app.api.deps import get_db
from petshop.app.db.models.models_v1 import Product, StockRecord, Stockroom
from petshop.app.schemas.product import ProductCreate, ProductDetailRead, ProductRead, ProductStockRead

router = APIRouter(prefix="/products")


@router.get("", response_model=list[ProductRead])
def list_products(
    active: bool | None = None,
    q: str | None = None,
    db: Session = Depends(get_db),
):
    """Catalogue ; `q` cherche dans le SKU et le nom."""
    stmt = select(Product).order_by(Product.sku)
    if active is not None:
        stmt = stmt.where(Product.active == active)
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(Product.sku.ilike(pattern), Product.name.ilike(pattern)))

    return db.execute(stmt).scalars().all()


@router.get("/{product_id}", response_model=ProductDetailRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    rows = db.execute(
        select(StockRecord.stockroom_id, Stockroom.name, StockRecord.quantity)
        .join(Stockroom, Stockroom.id == StockRecord.stockroom_id)
        .where(StockRecord.product_id == product_id)
        .order_by(StockRecord.stockroom_id)
    ).all()
    stock = [ProductStockRead(stockroom_id=sid, stockroom_name=name, quantity=qty) for sid, name, qty in rows]

    detail = ProductDetailRead.model_validate(product)
    detail.stock = stock
    detail.total_quantity = sum((s.quantity for s in stock), Decimal(0))
    return detail


@router.post("", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    product = Product(**payload.model_dump())
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="SKU already exists")

    db.refresh(product)
    return product
