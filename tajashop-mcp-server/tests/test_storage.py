import json
import os
import stat

from tajashop_server.auth import AuthManager
from tajashop_server.models import CartItem, CartState
from tajashop_server.storage import CartStorage
from tajashop_server.store import CartStore


def test_load_missing_file_gives_empty_cart(tmp_path):
    storage = CartStorage(str(tmp_path / "cart.json"))

    assert storage.load() == CartState()


def test_save_and_load(tmp_path):
    path = tmp_path / "cart.json"
    storage = CartStorage(str(path))
    state = CartState(
        items=[CartItem(product_id="p1", title="Jacket", unit_price=15000, images=["x.jpg"], quantity=2)],
        is_open=True,
    )

    assert storage.save(state) is True

    assert storage.load() == state
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_corrupt_file_gives_empty_cart(tmp_path, caplog):
    path = tmp_path / "cart.json"
    path.write_text("{not json")

    assert CartStorage(str(path)).load() == CartState()
    assert "Could not load cart" in caplog.text


def test_invalid_items_give_empty_cart(tmp_path):
    path = tmp_path / "cart.json"
    path.write_text(json.dumps({"items": [{"product_id": "p1", "quantity": 0}]}))

    assert CartStorage(str(path)).load() == CartState()


def test_save_failure_is_reported_not_raised(tmp_path):
    storage = CartStorage(str(tmp_path / "missing-dir" / "cart.json"))

    assert storage.save(CartState()) is False


def test_store_survives_restart(tmp_path, product):
    path = str(tmp_path / "cart.json")
    store = CartStore(CartStorage(path))
    store.add_item(product("p1"), 3)

    restarted = CartStore(CartStorage(path))

    assert restarted.get_total_price() == 45000


def test_clear_removes_file(tmp_path):
    path = tmp_path / "cart.json"
    storage = CartStorage(str(path))
    storage.save(CartState())

    storage.clear()

    assert not path.exists()


def test_auth_session_round_trip(tmp_path):
    session_file = str(tmp_path / "session.json")
    auth = AuthManager(session_file=session_file)
    assert not auth.is_authenticated()

    auth.save_session("tok", user_email="jane@example.com")

    reloaded = AuthManager(session_file=session_file)
    assert reloaded.get_token() == "tok"
    assert reloaded.session.user_email == "jane@example.com"

    reloaded.clear_session()
    assert AuthManager(session_file=session_file).get_token() is None


def test_configured_token_overrides_session(tmp_path):
    session_file = str(tmp_path / "session.json")
    AuthManager(session_file=session_file).save_session("old", user_email="jane@example.com")

    auth = AuthManager(session_file=session_file, token="env-token")

    assert auth.get_token() == "env-token"
    assert auth.session.user_email == "jane@example.com"


def test_undecodable_cart_file_gives_empty_cart(tmp_path):
    path = tmp_path / "cart.json"
    path.write_bytes(b"\xff\xfe\x00garbage")

    store = CartStore(CartStorage(str(path)))

    assert store.items == []


def test_undecodable_session_file_starts_signed_out(tmp_path):
    path = tmp_path / "session.json"
    path.write_bytes(b"\xff\xfe\x00garbage")

    auth = AuthManager(session_file=str(path))

    assert not auth.is_authenticated()


def test_save_leaves_no_temp_file(tmp_path):
    storage = CartStorage(str(tmp_path / "cart.json"))

    storage.save(CartState(is_open=True))

    assert [p.name for p in tmp_path.iterdir()] == ["cart.json"]


def test_failed_save_keeps_previous_cart(tmp_path, monkeypatch):
    path = tmp_path / "cart.json"
    storage = CartStorage(str(path))
    previous = CartState(items=[CartItem(product_id="p1", title="Jacket", unit_price=15000, quantity=2)])
    storage.save(previous)

    def broken_dump(*args, **kwargs):
        raise ValueError("cannot serialize")

    monkeypatch.setattr(json, "dump", broken_dump)

    assert storage.save(CartState()) is False
    monkeypatch.undo()

    assert storage.load() == previous
    assert [p.name for p in tmp_path.iterdir()] == ["cart.json"]
