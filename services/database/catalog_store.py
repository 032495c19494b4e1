"""SQL-backed catalog storage

Implements the structured-storage side of the query chain: products by
filter, product search, product by id, customer by phone and order by id.
Every lookup returns plain dicts (or None) so results can be cached and
rendered without touching the session again.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from .connection import DatabaseConnection
from .models import Customer, Order, OrderLine, Product

logger = logging.getLogger(__name__)

COUNTRY_CODE = "51"
LOCAL_PHONE_DIGITS = 9


def phone_variants(phone: str) -> List[str]:
    """
    Digit-only spellings under which a phone may be stored

    "+51 987 654 321" → ["51987654321", "987654321"]
    "987654321" → ["987654321", "51987654321"]
    """
    digits = re.sub(r"\D", "", str(phone or ""))
    if not digits:
        return []

    variants = [digits]
    if digits.startswith(COUNTRY_CODE) and len(digits) >= LOCAL_PHONE_DIGITS + 2:
        variants.append(digits[len(COUNTRY_CODE):])
    if not digits.startswith(COUNTRY_CODE) and len(digits) == LOCAL_PHONE_DIGITS:
        variants.append(COUNTRY_CODE + digits)
    if len(digits) >= LOCAL_PHONE_DIGITS:
        variants.append(digits[-LOCAL_PHONE_DIGITS:])

    return list(dict.fromkeys(variants))


def _normalized_phone_column():
    return func.replace(func.replace(func.replace(Customer.phone, "+", ""), " ", ""), "-", "")


class SQLCatalogStore:
    """
    Catalog storage over SQLModel

    ``is_connected`` reflects the last connectivity probe; lookups raise
    SQLAlchemy errors, which the query executor treats as "try the next source".

    Usage:
        store = SQLCatalogStore(DatabaseConnection("sqlite:///kardex.db"))
        if store.is_connected():
            products = store.product_search("mouse", limit=5)
    """

    def __init__(self, connection: Optional[DatabaseConnection] = None):
        self.connection = connection
        self._connected = False
        self.refresh_connection()

    def refresh_connection(self) -> bool:
        """Probe the database and remember the outcome."""
        self._connected = bool(self.connection is not None and self.connection.ping())
        logger.info("Catalog storage %s", "connected" if self._connected else "disconnected")
        return self._connected

    def is_connected(self) -> bool:
        return self._connected

    def _session(self):
        try:
            return self.connection.get_session()
        except (RuntimeError, SQLAlchemyError):
            self._connected = False
            raise

    # ==================== Products ====================

    def products_by_filter(
        self,
        active: Optional[bool] = True,
        category: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        statement = select(Product)
        if active is not None:
            statement = statement.where(Product.active == active)
        if category:
            statement = statement.where(Product.category == category)
        statement = statement.order_by(Product.name).limit(limit)

        with self._session() as session:
            return [product.model_dump() for product in session.exec(statement).all()]

    def product_search(self, term: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Active products whose name, codes or description contain ``term``;
        name matches rank first."""
        if not term or not term.strip():
            return []
        pattern = f"%{term.strip()}%"

        rank = case(
            (col(Product.name).ilike(pattern), 1),
            (col(Product.internal_code).ilike(pattern), 2),
            (col(Product.barcode).ilike(pattern), 3),
            else_=4,
        )
        statement = (
            select(Product)
            .where(Product.active == True)  # noqa: E712
            .where(
                or_(
                    col(Product.name).ilike(pattern),
                    col(Product.internal_code).ilike(pattern),
                    col(Product.barcode).ilike(pattern),
                    col(Product.description).ilike(pattern),
                )
            )
            .order_by(rank, Product.name)
            .limit(limit)
        )

        with self._session() as session:
            return [product.model_dump() for product in session.exec(statement).all()]

    def product_by_id(self, product_id: Any) -> Optional[Dict[str, Any]]:
        try:
            key = int(product_id)
        except (TypeError, ValueError):
            return None

        with self._session() as session:
            product = session.get(Product, key)
            if product is None or not product.active:
                return None
            return product.model_dump()

    # ==================== Customers ====================

    def customer_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        """Customer by phone, tolerant to country code, spaces, dashes and '+'."""
        variants = phone_variants(phone)
        if not variants:
            return None

        normalized = _normalized_phone_column()
        exact = or_(*[normalized == v for v in variants])
        statement = (
            select(Customer)
            .where(or_(exact, *[normalized.like(f"%{v}") for v in variants]))
            .order_by(case((exact, 1), else_=2), Customer.id)
            .limit(1)
        )

        with self._session() as session:
            customer = session.exec(statement).first()
            return customer.model_dump() if customer else None

    # ==================== Orders ====================

    def order_by_id(self, order_id: Any) -> Optional[Dict[str, Any]]:
        """Order with its itemized lines (each carrying the product name)."""
        try:
            key = int(order_id)
        except (TypeError, ValueError):
            return None

        with self._session() as session:
            order = session.get(Order, key)
            if order is None:
                return None

            rows = session.exec(
                select(OrderLine, Product)
                .where(OrderLine.order_id == key)
                .where(OrderLine.product_id == Product.id)
                .order_by(OrderLine.id)
            ).all()

            result = order.model_dump()
            result["lines"] = [
                {
                    **line.model_dump(),
                    "product": {"id": product.id, "name": product.name, "price": product.price},
                }
                for line, product in rows
            ]
            return result
