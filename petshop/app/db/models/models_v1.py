from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from petshop.app.db.base import Base, BigIntId
from petshop.app.db.models.core_types import SaleStatus, MovementType

QTY = Numeric(14, 3)
MONEY = Numeric(14, 2)


# ---------- MASTER DATA ----------
class Stockroom(Base):
    __tablename__ = "stockrooms"
    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(MONEY, default=0, nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(MONEY, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("sale_price >= 0", name="ck_product_sale_price_nonneg"),
        CheckConstraint("cost_price >= 0", name="ck_product_cost_price_nonneg"),
    )


# ---------- INVENTORY ----------
class StockRecord(Base):
    __tablename__ = "stock_records"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    stockroom_id: Mapped[int] = mapped_column(ForeignKey("stockrooms.id", ondelete="RESTRICT"), primary_key=True)

    quantity: Mapped[Decimal] = mapped_column(QTY, default=0, nullable=False)
    # jeton de concurrence optimiste, incrémenté à chaque écriture
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    product: Mapped[Product] = relationship()
    stockroom: Mapped[Stockroom] = relationship()

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_stock_record_quantity_nonneg"),
    )


class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    stockroom_id: Mapped[int] = mapped_column(ForeignKey("stockrooms.id", ondelete="RESTRICT"), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(
        Enum(MovementType, name="movement_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    previous_quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    change: Mapped[Decimal] = mapped_column(QTY, nullable=False)

    # pas de FK : l'historique survit à la suppression de la vente
    sale_id: Mapped[int | None] = mapped_column(BigIntId, index=True)
    reason: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_stock_movements_stockroom_product_time", "stockroom_id", "product_id", "created_at"),
    )


# ---------- SALES ----------
class Sale(Base):
    __tablename__ = "sales"
    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    stockroom_id: Mapped[int] = mapped_column(ForeignKey("stockrooms.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[SaleStatus] = mapped_column(
        Enum(SaleStatus, name="sale_status"),
        default=SaleStatus.pending,
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(MONEY, default=0, nullable=False)
    discount: Mapped[Decimal] = mapped_column(MONEY, default=0, nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(MONEY, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    # Idempotence création (clé unique, nullable OK)
    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    stockroom: Mapped[Stockroom] = relationship()
    items: Mapped[list["SaleItem"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    __table_args__ = (
        CheckConstraint("discount >= 0", name="ck_sale_discount_nonneg"),
    )


class SaleItem(Base):
    __tablename__ = "sale_items"
    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    sale_id: Mapped[int] = mapped_column(ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    sale: Mapped[Sale] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_item_qty_pos"),
        CheckConstraint("unit_price >= 0", name="ck_sale_item_unit_price_nonneg"),
    )
