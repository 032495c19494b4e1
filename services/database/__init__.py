"""Catalog database module

Structured storage consulted before the remote API.

Layout:
- models.py - SQLModel tables (Product, Customer, Order, OrderLine)
- connection.py - engine management driven by StorageConfig
- catalog_store.py - SQLCatalogStore, the storage side of the query chain
"""

from .models import Customer, Order, OrderLine, Product
from .connection import DatabaseConnection, get_db_connection, reset_db_connection
from .catalog_store import SQLCatalogStore, phone_variants

__all__ = [
    "Product",
    "Customer",
    "Order",
    "OrderLine",
    "DatabaseConnection",
    "get_db_connection",
    "reset_db_connection",
    "SQLCatalogStore",
    "phone_variants",
]
