"""Shared pytest fixtures for storefront tests."""

import json
import time
from decimal import Decimal
from typing import Optional

import httpx
import pytest

from storefront_server.cart import CartStore
from storefront_server.config import StoreSettings
from storefront_server.models import Product
from storefront_server.payments import OrderBook, PaymentBridge, PaymentGatewayClient
from storefront_server.storage import JsonFileStorage
from storefront_server.storefront import Storefront
from storefront_server.supabase_client import SupabaseClient

SUPABASE_URL = "https://project.supabase.test"
GATEWAY_URL = "https://api.gateway.test/v1"
GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "test_secret"


class FakeBackend:
    """In-memory stand-in for the hosted tables and auth API."""

    def __init__(self) -> None:
        self.categories = [
            {"id": 1, "name": "Electronics", "image_url": None},
            {"id": 2, "name": "Clothing", "image_url": None},
            {"id": 3, "name": "Home & Kitchen", "image_url": None},
        ]
        self.products = [
            {"id": "1", "name": "Smartphone X", "description": "Phone", "price": 299.99,
             "stock_quantity": 10, "category_id": 1, "image_url": None},
            {"id": "2", "name": "Laptop Pro", "description": "Laptop", "price": 799.50,
             "stock_quantity": 2, "category_id": 1, "image_url": None},
            {"id": "3", "name": "Cotton T-Shirt", "description": "Shirt", "price": 15.00,
             "stock_quantity": 0, "category_id": 2, "image_url": None},
            {"id": "4", "name": "Coffee Mug", "description": "Mug", "price": 120.00,
             "stock_quantity": 5, "category_id": 3, "image_url": None},
        ]
        self.orders: list[dict] = []
        self.users = {
            "shopper@example.com": {
                "password": "secret123",
                "user": {"id": "user-1", "email": "shopper@example.com",
                         "user_metadata": {"full_name": "Sam Shopper"}},
            },
            "admin@mystore.com": {
                "password": "adminpass",
                "user": {"id": "user-2", "email": "admin@mystore.com", "user_metadata": {}},
            },
            "flagged@example.com": {
                "password": "flagpass",
                "user": {"id": "user-3", "email": "flagged@example.com",
                         "user_metadata": {"is_admin": True}},
            },
        }
        self.requests: list[httpx.Request] = []
        self.fail = False
        self._next_id = 100

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def _match(self, rows: list[dict], params: httpx.QueryParams) -> list[dict]:
        result = rows
        for field in ("id", "category_id", "order_id"):
            value = params.get(field)
            if value and value.startswith("eq."):
                result = [r for r in result if str(r.get(field)) == value[3:]]
        name = params.get("name")
        if name and name.startswith("ilike."):
            needle = name[len("ilike."):].strip("*").lower()
            result = [r for r in result if needle in r["name"].lower()]
        return result

    def _with_category(self, row: dict) -> dict:
        category = next((c for c in self.categories if c["id"] == row.get("category_id")), None)
        return {**row, "categories": category}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectTimeout("timed out", request=request)

        path = request.url.path
        params = request.url.params
        body = json.loads(request.content) if request.content else None

        if path == "/rest/v1/categories":
            return httpx.Response(200, json=sorted(self.categories, key=lambda c: c["name"]))

        if path == "/rest/v1/products":
            if request.method == "GET":
                rows = [self._with_category(r) for r in self._match(self.products, params)]
                if params.get("order") == "name":
                    rows.sort(key=lambda r: r["name"])
                return httpx.Response(200, json=rows)
            if request.method == "POST":
                self._next_id += 1
                row = {**body, "id": str(self._next_id)}
                self.products.append(row)
                return httpx.Response(201, json=[row])
            if request.method == "PATCH":
                rows = self._match(self.products, params)
                for row in rows:
                    row.update(body)
                return httpx.Response(200, json=rows)
            if request.method == "DELETE":
                rows = self._match(self.products, params)
                self.products = [r for r in self.products if r not in rows]
                return httpx.Response(200, json=rows)

        if path == "/rest/v1/orders":
            if request.method == "POST":
                self.orders.append(body)
                return httpx.Response(201, json=[body])
            if request.method == "PATCH":
                rows = self._match(self.orders, params)
                for row in rows:
                    row.update(body)
                return httpx.Response(200, json=rows)

        if path == "/auth/v1/token":
            account = self.users.get(body["email"])
            if account is None or account["password"] != body["password"]:
                return httpx.Response(400, json={"error_description": "Invalid login credentials"})
            return httpx.Response(200, json={
                "access_token": f"token-{account['user']['id']}",
                "refresh_token": "refresh",
                "user": account["user"],
            })

        if path == "/auth/v1/signup":
            if body["email"] in self.users:
                return httpx.Response(422, json={"msg": "User already registered"})
            user = {"id": f"user-{len(self.users) + 1}", "email": body["email"],
                    "user_metadata": body.get("data", {})}
            self.users[body["email"]] = {"password": body["password"], "user": user}
            return httpx.Response(200, json=user)

        if path == "/auth/v1/logout":
            return httpx.Response(204)

        return httpx.Response(404, json={"message": f"No route for {path}"})


class FakeGateway:
    """In-memory stand-in for the payment processor's orders API."""

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.fail_status: Optional[int] = None
        self.timeout = False
        self.delay = 0.0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.delay:
            time.sleep(self.delay)
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"error": {"description": "Bad request"}})
        payload = json.loads(request.content)
        order = {
            "id": f"order_{len(self.created) + 1}",
            "amount": payload["amount"],
            "currency": payload["currency"],
            "receipt": payload["receipt"],
            "status": "created",
        }
        self.created.append(payload)
        return httpx.Response(200, json=order)


def make_product(product_id: str, price: str, stock: int, name: Optional[str] = None) -> Product:
    return Product(
        id=product_id,
        name=name or f"Product {product_id}",
        price=Decimal(price),
        stock_quantity=stock,
        category_id=1,
    )


class StubCatalog:
    """Catalog that resolves products from a dict."""

    def __init__(self, products: dict[str, Product]) -> None:
        self.products = products

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)


class CountingStorage(JsonFileStorage):
    """Storage that counts writes."""

    def __init__(self, path: str) -> None:
        super().__init__(path)
        self.writes = 0

    def set_item(self, key, value) -> None:
        self.writes += 1
        super().set_item(key, value)


@pytest.fixture
def products():
    """Products used by cart and checkout tests."""
    return {
        "p1": make_product("p1", "10.00", 5, "Notebook"),
        "p2": make_product("p2", "25.50", 2, "Desk Lamp"),
        "p3": make_product("p3", "3.25", 10, "Pen"),
    }


@pytest.fixture
def storage(tmp_path):
    return CountingStorage(str(tmp_path / "cart.json"))


@pytest.fixture
def cart(storage):
    store = CartStore(storage, save_delay=0.05)
    yield store
    store._saver.cancel()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def supabase(backend):
    client = SupabaseClient(SUPABASE_URL, "anon-key", transport=httpx.MockTransport(backend.handler))
    yield client
    client.close()


@pytest.fixture
def gateway_client(fake_gateway):
    client = PaymentGatewayClient(
        GATEWAY_KEY_ID,
        GATEWAY_SECRET,
        base_url=GATEWAY_URL,
        transport=httpx.MockTransport(fake_gateway.handler),
    )
    yield client
    client.close()


@pytest.fixture
def bridge(gateway_client):
    return PaymentBridge(gateway_client, OrderBook())


@pytest.fixture
def settings(tmp_path):
    return StoreSettings(
        supabase_url=SUPABASE_URL,
        supabase_anon_key="anon-key",
        razorpay_key_id=GATEWAY_KEY_ID,
        razorpay_key_secret=GATEWAY_SECRET,
        razorpay_api_url=GATEWAY_URL,
        cart_file=str(tmp_path / "cart.json"),
        session_file=str(tmp_path / "session.json"),
        cart_save_delay=0.05,
        admin_emails=["admin@mystore.com"],
    )


@pytest.fixture
def storefront(settings, backend, fake_gateway):
    supabase = SupabaseClient(
        settings.supabase_url, settings.supabase_anon_key,
        transport=httpx.MockTransport(backend.handler),
    )
    gateway = PaymentGatewayClient(
        settings.razorpay_key_id,
        settings.razorpay_key_secret,
        base_url=settings.razorpay_api_url,
        transport=httpx.MockTransport(fake_gateway.handler),
    )
    return Storefront(settings, supabase=supabase, gateway=gateway)
