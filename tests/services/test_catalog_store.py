"""
SQLCatalogStore tests against in-memory SQLite
"""

from datetime import datetime, timezone

import pytest

from services.database import DatabaseConnection, SQLCatalogStore
from services.database.catalog_store import phone_variants
from services.database.models import Customer, Order, OrderLine, Product


@pytest.fixture
def connection():
    db = DatabaseConnection("sqlite://")
    db.create_tables()
    with db.get_session() as session:
        session.add_all([
            Product(id=1, name="Mouse Logitech", internal_code="MOU-01", price=25.0, stock=3, category="perifericos"),
            Product(id=2, name="Alfombrilla", description="Ideal para mouse", price=10.0, stock=8, category="perifericos"),
            Product(id=3, name="Monitor 24", internal_code="MON-24", barcode="7750001112223", price=450.0, stock=5, category="monitores"),
            Product(id=4, name="Mouse antiguo", price=5.0, stock=1, active=False),
            Customer(id=1, name="Ana Torres", phone="+51 987-654-321"),
            Customer(id=2, name="Luis Pérez", phone="912345678"),
            Order(id=7, order_number="P-0007", customer_id=1, total=60.0),
            OrderLine(id=1, order_id=7, product_id=1, quantity=2, unit_price=25.0, subtotal=50.0),
            OrderLine(id=2, order_id=7, product_id=2, quantity=1, unit_price=10.0, subtotal=10.0),
        ])
        session.commit()
    yield db
    db.dispose()


@pytest.fixture
def store(connection):
    return SQLCatalogStore(connection)


class TestConnectivity:
    def test_connected(self, store):
        assert store.is_connected() is True

    def test_without_database(self):
        store = SQLCatalogStore(DatabaseConnection(""))

        assert store.is_connected() is False

    def test_without_connection(self):
        assert SQLCatalogStore(None).is_connected() is False


class TestProducts:
    def test_active_products_by_name(self, store):
        names = [p["name"] for p in store.products_by_filter()]

        assert names == ["Alfombrilla", "Monitor 24", "Mouse Logitech"]

    def test_category_and_limit(self, store):
        products = store.products_by_filter(category="perifericos", limit=1)

        assert [p["name"] for p in products] == ["Alfombrilla"]

    def test_include_inactive(self, store):
        assert len(store.products_by_filter(active=None)) == 4

    def test_search_ranks_name_matches_first(self, store):
        products = store.product_search("mouse")

        assert [p["id"] for p in products] == [1, 2]

    def test_search_matches_codes(self, store):
        assert [p["id"] for p in store.product_search("mon-24")] == [3]
        assert [p["id"] for p in store.product_search("7750001112223")] == [3]

    def test_blank_search(self, store):
        assert store.product_search("  ") == []

    def test_by_id(self, store):
        product = store.product_by_id(1)

        assert product["name"] == "Mouse Logitech"
        assert product["price"] == 25.0
        assert product["stock"] == 3

    @pytest.mark.parametrize("product_id", [4, 99, "abc", None])
    def test_by_id_missing_or_inactive(self, store, product_id):
        assert store.product_by_id(product_id) is None


class TestCustomers:
    @pytest.mark.parametrize("phone", ["987654321", "51987654321", "+51 987 654 321"])
    def test_phone_spellings(self, store, phone):
        assert store.customer_by_phone(phone)["name"] == "Ana Torres"

    def test_stored_without_country_code(self, store):
        assert store.customer_by_phone("+51912345678")["name"] == "Luis Pérez"

    def test_unknown_phone(self, store):
        assert store.customer_by_phone("900000000") is None
        assert store.customer_by_phone("") is None


class TestOrders:
    def test_order_with_lines(self, store):
        order = store.order_by_id(7)

        assert order["order_number"] == "P-0007"
        assert order["total"] == 60.0
        assert [line["product"]["name"] for line in order["lines"]] == ["Mouse Logitech", "Alfombrilla"]
        assert order["lines"][0]["subtotal"] == 50.0

    def test_creation_time_is_stamped_in_utc(self, connection, store):
        order = Order(order_number="P-0008", total=0.0)
        assert order.created_at.tzinfo is timezone.utc

        with connection.get_session() as session:
            session.add(order)
            session.commit()
            session.refresh(order)
            order_id = order.id

        assert isinstance(store.order_by_id(order_id)["created_at"], datetime)

    def test_missing_order(self, store):
        assert store.order_by_id(8) is None


def test_phone_variants():
    assert phone_variants("+51 987 654 321") == ["51987654321", "987654321"]
    assert phone_variants("987654321") == ["987654321", "51987654321"]
    assert phone_variants("abc") == []


def test_process_wide_connection_from_environment(monkeypatch):
    from services.config import reset_storage_config
    from services.database import get_db_connection, reset_db_connection

    monkeypatch.setenv("STORAGE_DATABASE_URL", "sqlite://")
    reset_storage_config()
    reset_db_connection()
    try:
        db = get_db_connection()

        assert get_db_connection() is db
        assert db.ping() is True
    finally:
        reset_db_connection()
        reset_storage_config()
