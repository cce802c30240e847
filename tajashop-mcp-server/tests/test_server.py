import pytest

from tajashop_server import server
from tajashop_server.config import Settings
from tajashop_server.models import CartProduct
from tajashop_server.storage import CartStorage, MemoryCartStorage
from tajashop_server.sync import CartSync


@pytest.fixture
def tools(monkeypatch, auth_manager, store, client):
    monkeypatch.setattr(server, "auth_manager", auth_manager, raising=False)
    monkeypatch.setattr(server, "cart_store", store, raising=False)
    monkeypatch.setattr(server, "tajashop_client", client, raising=False)
    monkeypatch.setattr(server, "cart_sync", CartSync(store, client), raising=False)
    monkeypatch.setattr(server, "credentials", None)

    async def call(name, arguments=None):
        (content,) = await server.call_tool(name, arguments or {})
        return content.text

    return call


JACKET = {"product_id": "p1", "title": "Jacket", "unit_price": 15000, "seller_name": "Jane"}


def test_format_price():
    assert server.format_price(1500000) == "₦1,500,000"


@pytest.mark.asyncio
async def test_add_and_get_cart(tools, store):
    text = await tools("tajashop_cart_add", {**JACKET, "quantity": 2})

    assert "Added 2 x Jacket" in text
    assert "Total: ₦30,000" in text
    assert store.get_total_items() == 2


@pytest.mark.asyncio
async def test_add_rejects_zero_quantity(tools, store):
    text = await tools("tajashop_cart_add", {**JACKET, "quantity": 0})

    assert text.startswith("Error")
    assert len(store) == 0


@pytest.mark.asyncio
async def test_update_remove_clear(tools, store):
    await tools("tajashop_cart_add", JACKET)

    assert "Quantity: 3" in await tools("tajashop_cart_update_quantity", {"product_id": "p1", "quantity": 3})
    assert "not in the cart" in await tools("tajashop_cart_update_quantity", {"product_id": "x", "quantity": 1})
    assert await tools("tajashop_cart_remove", {"product_id": "p1"}) == "Your cart is empty"
    assert await tools("tajashop_cart_clear") == "Cart cleared"


@pytest.mark.asyncio
async def test_toggle(tools):
    assert await tools("tajashop_cart_toggle") == "Cart opened"
    assert await tools("tajashop_cart_toggle") == "Cart closed"


@pytest.mark.asyncio
async def test_sync_without_session(tools, fake_api):
    text = await tools("tajashop_sync")

    assert text.startswith("Error: Not signed in")
    assert fake_api.requests == []


@pytest.mark.asyncio
async def test_login_then_sync_is_skipped(tools, fake_api, store):
    await tools("tajashop_cart_add", JACKET)

    text = await tools("tajashop_login", {"email": "jane@example.com", "password": "hunter2"})
    assert "Successfully logged in as jane@example.com" in text
    assert "Local cart merged into your account" in text

    text = await tools("tajashop_sync")
    assert text.startswith("Cart sync skipped")
    assert len(fake_api.calls("POST", "/api/cart/merge")) == 1


@pytest.mark.asyncio
async def test_remote_cart(tools, fake_api, auth_manager):
    auth_manager.save_session("tok")
    fake_api.items["B"] = {"product": "B", "title": "Bag", "price": 2500, "image": "", "quantity": 2}

    text = await tools("tajashop_remote_cart")

    assert "1. Bag x2 (₦2,500 each)" in text


@pytest.mark.asyncio
async def test_logout_resets_sync(tools, auth_manager):
    await tools("tajashop_login", {"email": "jane@example.com", "password": "hunter2"})

    assert await tools("tajashop_logout") == "Successfully logged out"
    assert not auth_manager.is_authenticated()
    assert server.cart_sync.active_token is None


@pytest.mark.asyncio
async def test_unknown_tool(tools):
    assert await tools("nope") == "Unknown tool: nope"


@pytest.mark.asyncio
async def test_missing_argument_is_reported(tools):
    text = await tools("tajashop_cart_remove")

    assert text.startswith("Error")


@pytest.mark.asyncio
async def test_remote_changes_mirror_account_cart(tools, fake_api, auth_manager, store, product):
    store.add_item(product("p1"), 1)
    auth_manager.save_session("tok")

    text = await tools("tajashop_remote_add", {"product_id": "B", "quantity": 2})

    assert text.startswith("Account cart updated")
    assert len(fake_api.calls("POST", "/api/cart/merge")) == 1
    assert {item.product_id: item.quantity for item in store.items} == {"p1": 1, "B": 2}

    await tools("tajashop_remote_update_quantity", {"product_id": "B", "quantity": 5})
    await tools("tajashop_remote_remove", {"product_id": "p1"})
    assert {item.product_id: item.quantity for item in store.items} == {"B": 5}

    assert "Your cart is empty" in await tools("tajashop_remote_clear")
    assert fake_api.items == {}


@pytest.mark.asyncio
async def test_remote_change_failure_keeps_local_cart(tools, fake_api, auth_manager, store, product):
    auth_manager.save_session("tok")
    fake_api.items["B"] = {"product": "B", "title": "Bag", "price": 2500, "image": "", "quantity": 1}
    await tools("tajashop_sync")

    text = await tools("tajashop_remote_remove", {"product_id": "missing"})

    assert text == "Could not update account cart: Item not in cart"
    assert [item.product_id for item in store.items] == ["B"]


@pytest.mark.asyncio
async def test_remote_change_requires_login(tools, fake_api):
    text = await tools("tajashop_remote_add", {"product_id": "B"})

    assert text.startswith("Error: Not signed in")
    assert fake_api.requests == []


@pytest.mark.asyncio
async def test_build_components_without_persistence(tmp_path):
    settings = Settings(
        persist_cart=False,
        cart_file=str(tmp_path / "cart.json"),
        session_file=str(tmp_path / "session.json"),
    )
    auth, store, client, sync = server.build_components(settings)

    store.add_item(CartProduct(product_id="p1", title="Jacket", unit_price=15000))

    assert isinstance(store.storage, MemoryCartStorage)
    assert not (tmp_path / "cart.json").exists()
    await client.close()


@pytest.mark.asyncio
async def test_build_components_persists_by_default(tmp_path):
    settings = Settings(cart_file=str(tmp_path / "cart.json"), session_file=str(tmp_path / "session.json"))
    auth, store, client, sync = server.build_components(settings)

    store.add_item(CartProduct(product_id="p1", title="Jacket", unit_price=15000))

    assert isinstance(store.storage, CartStorage)
    assert (tmp_path / "cart.json").exists()
    await client.close()
