"""create inventory schema (stockrooms, products, stock_records, sales, history)

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(14, 3)
MONEY = sa.Numeric(14, 2)

SALE_STATUS = sa.Enum("pending", "paid", "cancelled", name="sale_status")
MOVEMENT_TYPE = sa.Enum("SALE", "REVERSAL", "ADJUSTMENT", "COMPENSATION", name="movement_type")


def upgrade() -> None:
    op.create_table(
        "stockrooms",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sale_price", MONEY, nullable=False, server_default="0"),
        sa.Column("cost_price", MONEY, nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("sale_price >= 0", name="ck_product_sale_price_nonneg"),
        sa.CheckConstraint("cost_price >= 0", name="ck_product_cost_price_nonneg"),
    )

    op.create_table(
        "stock_records",
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("stockroom_id", sa.BigInteger(), sa.ForeignKey("stockrooms.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("quantity", QTY, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_record_quantity_nonneg"),
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("stockroom_id", sa.BigInteger(), sa.ForeignKey("stockrooms.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("movement_type", MOVEMENT_TYPE, nullable=False),
        sa.Column("previous_quantity", QTY, nullable=False),
        sa.Column("new_quantity", QTY, nullable=False),
        sa.Column("change", QTY, nullable=False),
        sa.Column("sale_id", sa.BigInteger(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_sale_id", "stock_movements", ["sale_id"])
    op.create_index(
        "ix_stock_movements_stockroom_product_time",
        "stock_movements",
        ["stockroom_id", "product_id", "created_at"],
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("number", sa.String(32), nullable=False, unique=True),
        sa.Column("stockroom_id", sa.BigInteger(), sa.ForeignKey("stockrooms.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", SALE_STATUS, nullable=False, server_default="pending"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("discount", MONEY, nullable=False, server_default="0"),
        sa.Column("final_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(64), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("discount >= 0", name="ck_sale_discount_nonneg"),
    )

    op.create_table(
        "sale_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("sale_id", sa.BigInteger(), sa.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sale_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_sale_item_unit_price_nonneg"),
    )
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"])


def downgrade() -> None:
    op.drop_index("ix_sale_items_sale_id", table_name="sale_items")
    op.drop_table("sale_items")
    op.drop_table("sales")
    op.drop_index("ix_stock_movements_stockroom_product_time", table_name="stock_movements")
    op.drop_index("ix_stock_movements_sale_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_product_id", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_table("stock_records")
    op.drop_table("products")
    op.drop_table("stockrooms")

    # Downgrade safe : types enum Postgres
    SALE_STATUS.drop(op.get_bind(), checkfirst=True)
    MOVEMENT_TYPE.drop(op.get_bind(), checkfirst=True)
