"""
Remote catalog API client
Responsibilities:
1. Call the back-office REST API (products, search, customers, orders)
2. Retry transport errors
3. Normalize payloads to the storage dict shape
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class RemoteAPIError(Exception):
    """The remote API answered with an error or could not be reached."""


# Back-office field names → pipeline field names
_PRODUCT_FIELDS = {
    "nombre": "name",
    "precio_venta": "price",
    "stock_actual": "stock",
    "activo": "active",
    "codigo_interno": "internal_code",
    "codigo_barras": "barcode",
    "descripcion": "description",
    "categoria": "category",
}

_CUSTOMER_FIELDS = {
    "nombre": "name",
    "telefono": "phone",
    "tipo_documento": "document_type",
    "numero_documento": "document_number",
    "direccion": "address",
    "tipo_cliente": "customer_type",
}

_ORDER_FIELDS = {
    "numero_pedido": "order_number",
    "estado": "status",
    "detalles": "lines",
    "cliente_id": "customer_id",
}

_LINE_FIELDS = {
    "cantidad": "quantity",
    "precio_unitario": "unit_price",
    "producto": "product",
    "producto_id": "product_id",
}


def _rename(record: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    renamed = {}
    for key, value in record.items():
        renamed[fields.get(key, key)] = value
    return renamed


def normalize_product(record: Dict[str, Any]) -> Dict[str, Any]:
    product = _rename(record, _PRODUCT_FIELDS)
    try:
        product["price"] = float(product.get("price") or 0)
    except (TypeError, ValueError):
        product["price"] = 0.0
    try:
        product["stock"] = int(product.get("stock") or 0)
    except (TypeError, ValueError):
        product["stock"] = 0
    return product


def normalize_order(record: Dict[str, Any]) -> Dict[str, Any]:
    order = _rename(record, _ORDER_FIELDS)
    lines = []
    for line in order.get("lines") or []:
        line = _rename(line, _LINE_FIELDS)
        if isinstance(line.get("product"), dict):
            line["product"] = normalize_product(line["product"])
        lines.append(line)
    if lines:
        order["lines"] = lines
    return order


def _unwrap(payload: Any, *keys: str) -> Any:
    """Accept bare payloads and ``{"data": ...}`` style envelopes."""
    if isinstance(payload, dict):
        for key in ("data",) + keys:
            if key in payload:
                return payload[key]
    return payload


class RemoteCatalogAPI:
    """
    Back-office REST client (sync)

    Raises RemoteAPIError on any failure; the query executor treats that as
    "no result from this source".

    Usage:
        api = RemoteCatalogAPI("http://localhost:3000/api", token="...")
        products = api.product_search("mouse")
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000/api",
        token: Optional[str] = None,
        request_timeout: float = 10.0,
        max_retries: int = 1,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            base_url: API root
            token: bearer token, optional
            request_timeout: per-request timeout (seconds)
            max_retries: extra attempts on transport errors
            client: preconfigured httpx client (tests use a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.client = client or httpx.Client(
            base_url=self.base_url,
            timeout=request_timeout,
            headers=headers,
            follow_redirects=True,
        )

        logger.info("RemoteCatalogAPI ready: %s", self.base_url)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, allow_404: bool = False) -> Any:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug("GET %s %s [attempt %d/%d]", path, params, attempt + 1, self.max_retries + 1)
                response = self.client.get(path, params=params)
                if allow_404 and response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as exc:
                # Server answered; retrying will not change the answer
                raise RemoteAPIError(
                    f"HTTP {exc.response.status_code} for {path}: {exc.response.text[:200]}"
                ) from exc

            except httpx.RequestError as exc:
                logger.warning("Remote API request error on %s: %s", path, exc)
                last_error = exc

            except ValueError as exc:
                raise RemoteAPIError(f"invalid JSON from {path}: {exc}") from exc

        raise RemoteAPIError(f"request to {path} failed: {last_error}") from last_error

    # ==================== Products ====================

    def products_by_filter(
        self,
        active: Optional[bool] = True,
        category: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        params = {"limit": limit, "category": category}
        if active is not None:
            params["active"] = str(active).lower()
        payload = _unwrap(self._get("/products", params), "products")
        return [normalize_product(p) for p in payload or [] if isinstance(p, dict)]

    def product_search(self, term: str) -> List[Dict[str, Any]]:
        payload = _unwrap(self._get("/products/search", {"q": term}), "products")
        return [normalize_product(p) for p in payload or [] if isinstance(p, dict)]

    # ==================== Customers and orders ====================

    def customer_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        """Search customers by phone and keep the one whose digits match."""
        wanted = re.sub(r"\D", "", str(phone or ""))
        if not wanted:
            return None

        payload = _unwrap(self._get("/customers", {"search": wanted, "limit": 10}), "customers")
        for record in payload or []:
            if not isinstance(record, dict):
                continue
            customer = _rename(record, _CUSTOMER_FIELDS)
            digits = re.sub(r"\D", "", str(customer.get("phone") or ""))
            if digits and (digits in wanted or wanted in digits):
                return customer
        return None

    def order_by_id(self, order_id: Any) -> Optional[Dict[str, Any]]:
        payload = _unwrap(self._get(f"/orders/{order_id}", allow_404=True), "order")
        return normalize_order(payload) if isinstance(payload, dict) else None

    def close(self):
        self.client.close()
        logger.info("RemoteCatalogAPI closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_remote_api_from_config() -> RemoteCatalogAPI:
    """RemoteCatalogAPI configured from REMOTE_API_* settings."""
    from services.config import get_remote_api_config

    config = get_remote_api_config()
    return RemoteCatalogAPI(base_url=config.base_url, token=config.token, request_timeout=config.timeout)
