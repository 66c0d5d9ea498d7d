from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from petshop.app.db.session import SessionLocal
from petshop.app.db.models.models_v1 import Product, StockRecord, Stockroom

DEFAULT_STOCKROOMS = ("Loja", "Depósito")
DEFAULT_PRODUCTS = (
    # sku, nom, prix de vente, prix de revient
    ("RAC-001", "Ração Premium Cães 15kg", Decimal("189.90"), Decimal("120.00")),
    ("AREIA-001", "Areia Higiênica Gatos 4kg", Decimal("29.90"), Decimal("15.00")),
)


def run_seed(session_factory=SessionLocal):
    db = session_factory()
    try:
        # 1) Stocks
        stockrooms = []
        for name in DEFAULT_STOCKROOMS:
            room = db.scalar(select(Stockroom).where(Stockroom.name == name))
            if not room:
                room = Stockroom(name=name, active=True)
                db.add(room)
                db.flush()
            stockrooms.append(room)

        # 2) Produits + lignes de stock à zéro (les lignes doivent exister avant toute vente)
        for sku, name, sale_price, cost_price in DEFAULT_PRODUCTS:
            product = db.scalar(select(Product).where(Product.sku == sku))
            if not product:
                product = Product(sku=sku, name=name, sale_price=sale_price, cost_price=cost_price, active=True)
                db.add(product)
                db.flush()
            for room in stockrooms:
                if not db.get(StockRecord, (product.id, room.id)):
                    db.add(StockRecord(product_id=product.id, stockroom_id=room.id, quantity=0, version=1))

        db.commit()
        print(f"SEED OK: stockrooms={len(stockrooms)}, products={len(DEFAULT_PRODUCTS)}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
