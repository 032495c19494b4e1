"""
Query executor
Responsibilities:
1. Dispatch an intent's declared query to one of six operations
2. Structured storage first (when connected), remote API as the fallback source
3. Query-namespace caching per query type
4. Client-side price and availability filters
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from integration.cache_service import CacheService
from monitoring.metrics import MetricsCollector, get_metrics_collector, log_source_switch
from services.models import Intent, QueryName, QueryResult
from services.protocols import CatalogAPI, CatalogStorage, SessionStore

logger = logging.getLogger(__name__)


def _filter_value(filters: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = filters.get(name)
        if value is not None:
            return value
    return None


def _filter_number(filters: Dict[str, Any], *names: str) -> Optional[float]:
    """Numeric filter value, or None when absent or unreadable (e.g. "50 soles")."""
    value = _filter_value(filters, *names)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable %s filter: %r", names[0], value)
        return None


def _limit(value: Any, default: int) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        if value is not None:
            logger.warning("Ignoring unreadable limit: %r", value)
        return default
    return limit if limit > 0 else default


def _price(product: Dict[str, Any]) -> float:
    try:
        return float(product.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0


def _stock(product: Dict[str, Any]) -> int:
    try:
        return int(product.get("stock") or 0)
    except (TypeError, ValueError):
        return 0


def apply_filters(products: List[Dict[str, Any]], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Price ceiling, then price floor, then availability.

    Filter keys are accepted in snake_case or camelCase; a price that does
    not read as a number is skipped.
    """
    price_max = _filter_number(filters, "price_max", "priceMax")
    price_min = _filter_number(filters, "price_min", "priceMin")
    in_stock_only = _filter_value(filters, "in_stock_only", "inStockOnly")

    if price_max is not None:
        products = [p for p in products if _price(p) <= price_max]
    if price_min is not None:
        products = [p for p in products if _price(p) >= price_min]
    if in_stock_only:
        products = [p for p in products if _stock(p) > 0]
    return products


class QueryExecutor:
    """
    Storage → remote API query chain

    Every lower-layer failure advances to the next source; exhausting all
    sources yields an empty list or None. ``execute`` never raises.
    """

    def __init__(
        self,
        storage: Optional[CatalogStorage],
        remote_api: Optional[CatalogAPI],
        cache: CacheService,
        session_store: Optional[SessionStore] = None,
        catalog_limit: int = 20,
        search_limit: int = 5,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Args:
            storage: structured storage (consulted only while connected)
            remote_api: remote catalog API
            cache: shared cache service (query namespace)
            session_store: session lookup for pending-order snapshots
            catalog_limit: default catalog page size
            search_limit: default search result count
        """
        self.storage = storage
        self.remote_api = remote_api
        self.cache = cache
        self.session_store = session_store
        self.catalog_limit = catalog_limit
        self.search_limit = search_limit
        self.metrics = metrics or get_metrics_collector()

        self._handlers: Dict[QueryName, Callable[[Dict[str, Any], Dict[str, Any]], Any]] = {
            QueryName.GET_CATALOG: lambda params, _: self.get_catalog(
                params.get("filters") or {}, params.get("limit")
            ),
            QueryName.PRODUCT_SEARCH: lambda params, _: self.search_catalog(
                params.get("term") or params.get("name") or "", params.get("limit")
            ),
            QueryName.GET_ONE: lambda params, _: self.get_one(
                name=params.get("name") or params.get("product"), product_id=params.get("id")
            ),
            QueryName.CHECK_STOCK: lambda params, _: self.check_stock(params.get("products") or []),
            QueryName.GET_CUSTOMER: lambda params, _: self.get_customer(
                params.get("phone") or params.get("phone_number")
            ),
            QueryName.GET_ORDER: lambda params, state: self.get_order(
                order_id=params.get("order_id") or params.get("orderId"),
                phone=params.get("phone") or params.get("phone_number"),
                session_state=state,
            ),
        }

    def _storage_connected(self) -> bool:
        if self.storage is None:
            return False
        try:
            return bool(self.storage.is_connected())
        except Exception as exc:
            logger.warning("Storage connectivity probe failed: %s", exc)
            return False

    def _from_storage(self, query: str, call: Callable[[], Any]) -> Any:
        if not self._storage_connected():
            return None
        try:
            result = call()
            self.metrics.record_source("storage", success=True)
            return result
        except Exception as exc:
            self.metrics.record_source("storage", success=False)
            log_source_switch("storage", "remote_api", str(exc), query)
            return None

    def _from_remote(self, query: str, call: Callable[[], Any]) -> Any:
        if self.remote_api is None:
            return None
        try:
            result = call()
            self.metrics.record_source("remote_api", success=True)
            return result
        except Exception as exc:
            self.metrics.record_source("remote_api", success=False)
            logger.warning("Remote API failed for %s: %s", query, exc)
            return None

    # ==================== Dispatch ====================

    def execute(self, intent: Intent, session_state: Optional[Dict[str, Any]] = None) -> QueryResult:
        """
        Run the query declared by an intent

        Args:
            intent: resolved intent
            session_state: conversation state (pending-order snapshot for get_order)

        Returns:
            QueryResult; ``error`` is set only for an unrecognized query name
        """
        if not intent.required_query:
            logger.debug("No query required for intent %s", intent.category.value)
            return QueryResult()

        query = intent.required_query
        if not isinstance(query, QueryName):
            query = QueryName.parse(query)
        handler = self._handlers.get(query) if query else None
        if handler is None:
            logger.warning("Unknown query requested: %s", intent.required_query)
            return QueryResult(error="unknown query")

        logger.info("Executing query %s (params=%s)", query.value, intent.query_params)
        try:
            return QueryResult(data=handler(intent.query_params or {}, session_state or {}))
        except Exception as exc:
            logger.error("Query %s failed: %s", query.value, exc, exc_info=True)
            return QueryResult()

    # ==================== Catalog ====================

    def get_catalog(self, filters: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        limit = _limit(limit or filters.get("limit"), self.catalog_limit)

        cache_key = f"catalog:{json.dumps(filters, sort_keys=True, default=str)}:{limit}"
        cached = self.cache.get_query(cache_key)
        if cached is not None:
            return cached

        active = filters.get("active", True) is not False
        category = filters.get("category")

        products = self._from_storage(
            QueryName.GET_CATALOG.value,
            lambda: self.storage.products_by_filter(active=active, category=category, limit=limit),
        )
        if not products:
            if self._storage_connected():
                log_source_switch("storage", "remote_api", "no results", QueryName.GET_CATALOG.value)
            products = self._from_remote(
                QueryName.GET_CATALOG.value,
                lambda: self.remote_api.products_by_filter(active=active, category=category, limit=limit),
            )

        products = apply_filters(list(products or []), filters)
        if products:
            self.cache.set_query(cache_key, products)
        return products

    def search_catalog(self, term: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if not term or not str(term).strip():
            return []
        term = str(term).strip()
        limit = _limit(limit, self.search_limit)

        cache_key = f"search:{term.lower()}:{limit}"
        cached = self.cache.get_query(cache_key)
        if cached is not None:
            return cached

        products = self._from_storage(
            QueryName.PRODUCT_SEARCH.value, lambda: self.storage.product_search(term, limit)
        )
        if not products:
            products = self._from_remote(
                QueryName.PRODUCT_SEARCH.value, lambda: self.remote_api.product_search(term)
            )
            products = list(products or [])[:limit]

        products = list(products)
        if products:
            self.cache.set_query(cache_key, products)
        return products

    def get_one(self, name: Optional[str] = None, product_id: Any = None) -> Optional[Dict[str, Any]]:
        """One product by id (storage) or by name (best search hit)."""
        try:
            if product_id is not None:
                cache_key = f"product:{product_id}"
                cached = self.cache.get_query(cache_key)
                if cached is not None:
                    return cached
                product = self._from_storage(
                    QueryName.GET_ONE.value, lambda: self.storage.product_by_id(product_id)
                )
                if product:
                    self.cache.set_query(cache_key, product)
                    return product

            if name:
                hits = self.search_catalog(name, 1)
                return hits[0] if hits else None
        except Exception as exc:
            logger.warning("Product lookup failed (name=%s, id=%s): %s", name, product_id, exc)
        return None

    def check_stock(self, items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Bucket requested items by availability

        Args:
            items: [{"name": str, "quantity": int}], quantity defaults to 1

        Returns:
            {"available": [...], "insufficient": [...]}; items that could not be
            found land in "insufficient" with reason "product_not_found"
        """
        available: List[Dict[str, Any]] = []
        insufficient: List[Dict[str, Any]] = []

        for item in items or []:
            if not isinstance(item, dict):
                item = {"name": str(item)}
            product = self.get_one(name=item.get("name") or item.get("product"))
            if not product:
                insufficient.append({**item, "reason": "product_not_found"})
                continue

            stock = _stock(product)
            try:
                requested = int(item.get("quantity") or 1)
            except (TypeError, ValueError):
                requested = 1

            if stock >= requested:
                available.append({
                    **item,
                    "stock": stock,
                    "product_id": product.get("id"),
                    "price": product.get("price"),
                })
            else:
                insufficient.append({
                    **item,
                    "stock": stock,
                    "requested": requested,
                    "product_id": product.get("id"),
                })

        return {"available": available, "insufficient": insufficient}

    # ==================== Customers and orders ====================

    def get_customer(self, phone: Optional[str]) -> Optional[Dict[str, Any]]:
        if not phone:
            return None
        customer = self._from_storage(
            QueryName.GET_CUSTOMER.value, lambda: self.storage.customer_by_phone(phone)
        )
        if not customer:
            customer = self._from_remote(
                QueryName.GET_CUSTOMER.value, lambda: self.remote_api.customer_by_phone(phone)
            )
        return customer or None

    def _order_by_id(self, order_id: Any) -> Optional[Dict[str, Any]]:
        cache_key = f"order:{order_id}"
        cached = self.cache.get_query(cache_key)
        if cached is not None:
            return cached

        order = self._from_storage(QueryName.GET_ORDER.value, lambda: self.storage.order_by_id(order_id))
        if not order:
            order = self._from_remote(QueryName.GET_ORDER.value, lambda: self.remote_api.order_by_id(order_id))
        if order:
            self.cache.set_query(cache_key, order)
        return order or None

    def _pending_order(self, phone: Optional[str], session_state: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        snapshot = session_state.get("current_order")
        if snapshot is None and phone and self.session_store is not None:
            try:
                stored = self.session_store.get(phone) or {}
            except Exception as exc:
                logger.warning("Session lookup failed for %s: %s", phone, exc)
                stored = {}
            snapshot = stored.get("current_order")

        if isinstance(snapshot, str):
            try:
                snapshot = json.loads(snapshot)
            except json.JSONDecodeError:
                logger.warning("Unreadable pending-order snapshot for %s", phone)
                return None
        return snapshot if isinstance(snapshot, dict) else None

    def get_order(
        self,
        order_id: Any = None,
        phone: Optional[str] = None,
        session_state: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Order by id, or the pending order of the session

        Without an id the pending-order snapshot is read from the session; a
        snapshot that references a remote order is resolved through the API.
        """
        session_state = session_state or {}
        if order_id:
            order = self._order_by_id(order_id)
            if order:
                return order

        snapshot = self._pending_order(phone or session_state.get("phone"), session_state)
        if not snapshot:
            return None

        remote_id = snapshot.get("order_id")
        if remote_id:
            order = self._from_remote(
                QueryName.GET_ORDER.value, lambda: self.remote_api.order_by_id(remote_id)
            )
            if order:
                return order
        return snapshot
