from __future__ import annotations

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from petshop.app.core.config import settings
from petshop.app.db.session import SessionLocal
from petshop.services.inventory import InventoryEngine
from petshop.services.sales import SaleService
from petshop.services.stock_store import SqlStockRecordStore


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_inventory_engine() -> InventoryEngine:
    # le store ouvre ses propres sessions : une transaction courte par ligne
    return InventoryEngine(
        SqlStockRecordStore(SessionLocal),
        max_attempts=settings.stock_write_max_attempts,
    )


def get_sale_service(
    db: Session = Depends(get_db),
    inventory: InventoryEngine = Depends(get_inventory_engine),
) -> SaleService:
    return SaleService(db, inventory)
