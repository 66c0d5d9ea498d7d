from decimal import Decimal

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    sale_price: Decimal = Field(default=Decimal(0), ge=0)
    cost_price: Decimal = Field(default=Decimal(0), ge=0)
    active: bool = True


class ProductRead(BaseModel):
    id: int
    sku: str
    name: str
    sale_price: Decimal
    cost_price: Decimal
    active: bool

    class Config:
        from_attributes = True


class ProductStockRead(BaseModel):
    """Quantité d'un produit dans un stock (une entrée par ligne configurée)."""

    stockroom_id: int
    stockroom_name: str
    quantity: Decimal


class ProductDetailRead(ProductRead):
    stock: list[ProductStockRead] = []
    total_quantity: Decimal = Decimal(0)
