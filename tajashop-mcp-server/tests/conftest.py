import json
from typing import Optional

import httpx
import pytest
import pytest_asyncio

from tajashop_server.auth import AuthManager
from tajashop_server.models import CartProduct
from tajashop_server.storage import MemoryCartStorage
from tajashop_server.store import CartStore
from tajashop_server.tajashop_client import TajaShopClient


class FakeCartApi:
    """In-process stand-in for the Taja.Shop cart endpoints."""

    def __init__(self, items: Optional[list[dict]] = None) -> None:
        self.items: dict[str, dict] = {item["product"]: dict(item) for item in items or []}
        self.requests: list[httpx.Request] = []
        self.fail: dict[tuple[str, str], int] = {}
        self.token: Optional[str] = "secret-token"

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def _cart(self) -> dict:
        return {"items": list(self.items.values())}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path

        if (method, path) in self.fail:
            status = self.fail[(method, path)]
            return httpx.Response(status, json={"success": False, "message": "Server error"})

        if path == "/api/auth/login":
            body = json.loads(request.content)
            if body.get("password") != "hunter2":
                return httpx.Response(401, json={"success": False, "message": "Invalid credentials"})
            return httpx.Response(200, json={"success": True, "data": {"token": self.token}})

        if method == "GET" and path == "/api/cart":
            return httpx.Response(200, json={"success": True, "data": self._cart()})

        if method == "POST" and path == "/api/cart/merge":
            for line in json.loads(request.content)["items"]:
                existing = self.items.get(line["product"])
                if existing:
                    existing["quantity"] = min(99, existing["quantity"] + line["quantity"])
                else:
                    self.items[line["product"]] = {
                        "product": line["product"],
                        "title": f"Product {line['product']}",
                        "price": 1000,
                        "image": "",
                        "quantity": line["quantity"],
                    }
            return httpx.Response(200, json={"success": True, "data": self._cart()})

        if method == "POST" and path == "/api/cart/items":
            body = json.loads(request.content)
            product_id = body["productId"]
            line = self.items.setdefault(
                product_id,
                {"product": product_id, "title": f"Product {product_id}", "price": 1000, "image": "", "quantity": 1},
            )
            line["quantity"] = body.get("quantity", line["quantity"])
            return httpx.Response(200, json={"success": True, "data": self._cart()})

        if path.startswith("/api/cart/items/"):
            product_id = path[len("/api/cart/items/"):]
            if product_id not in self.items:
                return httpx.Response(404, json={"success": False, "message": "Item not in cart"})
            if method == "PUT":
                quantity = json.loads(request.content)["quantity"]
                if quantity < 1:
                    del self.items[product_id]
                else:
                    self.items[product_id]["quantity"] = quantity
            elif method == "DELETE":
                del self.items[product_id]
            return httpx.Response(200, json={"success": True, "data": self._cart()})

        if method == "DELETE" and path == "/api/cart":
            self.items.clear()
            return httpx.Response(200, json={"success": True, "data": self._cart()})

        return httpx.Response(404, json={"success": False, "message": "Not found"})


@pytest.fixture
def product():
    def _product(product_id: str = "p1", title: str = "Jacket", unit_price: int = 15000) -> CartProduct:
        return CartProduct(
            product_id=product_id,
            title=title,
            unit_price=unit_price,
            images=["x.jpg"],
            seller_name="Jane",
            shop_slug="jane",
        )

    return _product


@pytest.fixture
def store():
    return CartStore(MemoryCartStorage())


@pytest.fixture
def auth_manager(tmp_path):
    return AuthManager(session_file=str(tmp_path / "session.json"))


@pytest.fixture
def fake_api():
    return FakeCartApi()


@pytest_asyncio.fixture
async def client(auth_manager, fake_api):
    client = TajaShopClient(
        auth_manager,
        base_url="http://tajashop.test",
        transport=httpx.MockTransport(fake_api.handler),
    )
    yield client
    await client.close()
