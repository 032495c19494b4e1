"""Collaborator protocols.

The pipeline talks to its external collaborators only through these
structural interfaces. Any object with matching methods satisfies them, so a
MySQL-backed store, a different REST client or a test stub can be dropped in
without inheritance.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class CatalogStorage(Protocol):
    """Structured storage, consulted first when connected."""

    def is_connected(self) -> bool:
        ...

    def products_by_filter(
        self,
        active: Optional[bool] = True,
        category: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        ...

    def product_search(self, term: str, limit: int = 5) -> List[Dict[str, Any]]:
        ...

    def product_by_id(self, product_id: Any) -> Optional[Dict[str, Any]]:
        ...

    def customer_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        ...

    def order_by_id(self, order_id: Any) -> Optional[Dict[str, Any]]:
        ...


@runtime_checkable
class CatalogAPI(Protocol):
    """Remote API mirroring the storage query shapes; assumed reachable."""

    def products_by_filter(
        self,
        active: Optional[bool] = True,
        category: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        ...

    def product_search(self, term: str) -> List[Dict[str, Any]]:
        ...

    def customer_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        ...

    def order_by_id(self, order_id: Any) -> Optional[Dict[str, Any]]:
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Conversation state and short history, keyed by session (phone number)."""

    def get(self, session_key: str) -> Optional[Dict[str, Any]]:
        ...

    def save(self, session_key: str, message: str, is_bot: bool = False) -> None:
        ...

    def history(self, session_key: str, limit: int = 10) -> List[Dict[str, Any]]:
        ...


@dataclass
class OrderOutcome:
    """
    Result reported by the order-processing collaborator

    Attributes:
        success: the order text was turned into order lines
        action: follow-up directive for the caller (default add_products_to_order)
        intent: alternative intent category detected instead of an order
        message: user-facing error text when processing failed
        data: order payload (products, totals, missing items, ...)
    """
    success: bool
    action: Optional[str] = None
    intent: Optional[str] = None
    message: Optional[str] = None
    data: Any = None


@runtime_checkable
class OrderProcessor(Protocol):
    def process_order(self, text: str, history: List[Dict[str, Any]]) -> OrderOutcome:
        ...
