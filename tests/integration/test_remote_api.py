"""
RemoteCatalogAPI unit tests (httpx.MockTransport, no network)
Covers:
1. Endpoint paths and query parameters
2. Payload normalization to the storage dict shape
3. Error mapping and transport retries
"""

import httpx
import pytest

from integration.remote_api import RemoteAPIError, RemoteCatalogAPI, normalize_product


def _api(handler, **kwargs) -> RemoteCatalogAPI:
    client = httpx.Client(base_url="http://kardex.test/api", transport=httpx.MockTransport(handler))
    return RemoteCatalogAPI(base_url="http://kardex.test/api", client=client, **kwargs)


class TestProducts:
    def test_products_by_filter_sends_params_and_normalizes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"data": [
                {"id": 1, "nombre": "Mouse", "precio_venta": "25.50", "stock_actual": 3},
            ]})

        products = _api(handler).products_by_filter(active=True, limit=20)

        assert seen["path"] == "/api/products"
        assert seen["params"] == {"limit": "20", "active": "true"}
        assert products == [{"id": 1, "name": "Mouse", "price": 25.5, "stock": 3}]

    def test_product_search_accepts_bare_list(self):
        def handler(request):
            assert request.url.path == "/api/products/search"
            assert request.url.params["q"] == "teclado"
            return httpx.Response(200, json=[{"id": 2, "name": "Teclado", "price": 80, "stock": 0}])

        products = _api(handler).product_search("teclado")

        assert products[0]["name"] == "Teclado"
        assert products[0]["stock"] == 0

    def test_http_error_raises_without_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="boom")

        with pytest.raises(RemoteAPIError):
            _api(handler, max_retries=2).product_search("mouse")
        assert len(calls) == 1

    def test_transport_error_is_retried_then_raised(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RemoteAPIError):
            _api(handler, max_retries=1).products_by_filter()
        assert len(calls) == 2

    def test_transport_error_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=[{"id": 1, "name": "Mouse", "price": 10, "stock": 1}])

        assert _api(handler, max_retries=1).product_search("mouse")[0]["id"] == 1


class TestCustomersAndOrders:
    def test_customer_by_phone_matches_digits(self):
        def handler(request):
            assert request.url.params["search"] == "51987654321"
            return httpx.Response(200, json=[
                {"id": 1, "nombre": "Otro", "telefono": "+51 911 111 111"},
                {"id": 2, "nombre": "Ana", "telefono": "987-654-321"},
            ])

        customer = _api(handler).customer_by_phone("+51 987 654 321")

        assert customer["id"] == 2
        assert customer["name"] == "Ana"

    def test_customer_without_match_is_none(self):
        api = _api(lambda request: httpx.Response(200, json=[]))

        assert api.customer_by_phone("999") is None

    def test_order_by_id_normalizes_lines(self):
        def handler(request):
            assert request.url.path == "/api/orders/15"
            return httpx.Response(200, json={"data": {
                "id": 15,
                "numero_pedido": "P-0015",
                "total": 51.0,
                "detalles": [{"cantidad": 2, "subtotal": 51.0, "producto": {"nombre": "Mouse", "precio_venta": 25.5}}],
            }})

        order = _api(handler).order_by_id(15)

        assert order["order_number"] == "P-0015"
        assert order["lines"][0]["quantity"] == 2
        assert order["lines"][0]["product"]["name"] == "Mouse"

    def test_missing_order_is_none(self):
        api = _api(lambda request: httpx.Response(404, json={"error": "not found"}))

        assert api.order_by_id(99) is None


def test_bearer_token_header():
    api = RemoteCatalogAPI(base_url="http://kardex.test/api", token="secret")
    try:
        assert api.client.headers["Authorization"] == "Bearer secret"
    finally:
        api.close()


def test_normalize_product_tolerates_bad_numbers():
    product = normalize_product({"nombre": "X", "precio_venta": "n/a", "stock_actual": None})

    assert product["price"] == 0.0
    assert product["stock"] == 0


def test_client_built_from_environment(monkeypatch):
    from integration.remote_api import create_remote_api_from_config
    from services.config import reset_remote_api_config

    monkeypatch.setenv("REMOTE_API_BASE_URL", "http://backoffice.test/api/")
    monkeypatch.setenv("REMOTE_API_TOKEN", "secret")
    reset_remote_api_config()
    try:
        with create_remote_api_from_config() as api:
            assert api.base_url == "http://backoffice.test/api"
            assert api.client.headers["Authorization"] == "Bearer secret"
    finally:
        reset_remote_api_config()
