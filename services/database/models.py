"""Catalog data models

Tables mirror the sales back office: products, customers, orders and their
lines. Lookups hand plain dicts to the pipeline (see catalog_store.py), so the
column names below are also the keys the rest of the code reads.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Product(SQLModel, table=True):
    """A sellable catalog item."""

    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, description="Display name, e.g. 'Mouse inalámbrico'")
    internal_code: Optional[str] = Field(default=None, index=True, description="Back-office SKU")
    barcode: Optional[str] = Field(default=None, description="EAN/UPC barcode")
    description: Optional[str] = Field(default=None)
    price: float = Field(default=0.0, description="Sale price (PEN)")
    stock: int = Field(default=0, description="Units on hand")
    active: bool = Field(default=True, index=True)
    category: Optional[str] = Field(default=None, index=True)


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    document_type: Optional[str] = Field(default=None, description="DNI / RUC")
    document_number: Optional[str] = Field(default=None)
    phone: Optional[str] = Field(default=None, index=True, description="As typed by staff: '+51 987-654-321'")
    email: Optional[str] = Field(default=None)
    address: Optional[str] = Field(default=None)
    customer_type: Optional[str] = Field(default=None)


class Order(SQLModel, table=True):
    """A customer order; ``status`` follows the back office (pending, confirmed, ...)."""

    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: Optional[str] = Field(default=None, index=True)
    customer_id: Optional[int] = Field(default=None, foreign_key="customers.id")
    status: str = Field(default="pending")
    total: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OrderLine(SQLModel, table=True):
    __tablename__ = "order_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: int = Field(foreign_key="products.id")
    quantity: int = Field(default=1)
    unit_price: float = Field(default=0.0)
    subtotal: float = Field(default=0.0)
