# tests/test_checkout.py
import asyncio

import pytest
from fastapi.testclient import TestClient

from fizzpan.errors import BackendError, EmptyCartError, FormError
from fizzpan.main import app, transport

from conftest import Passthrough


class FailingItemsInsert(Passthrough):
    def __init__(self, inner, fail_delete=False):
        super().__init__(inner)
        self.fail_delete = fail_delete

    async def execute(self, query, access_token=None):
        if query.table == "order_items" and query.action == "insert":
            raise BackendError('insert or update on table "order_items" violates foreign key constraint',
                               status_code=409, code="23503")
        if self.fail_delete and query.table == "orders" and query.action == "delete":
            raise BackendError("connection reset", status_code=503)
        return await super().execute(query, access_token)


def test_empty_cart_is_rejected_before_any_backend_call(db, customer):
    calls = db.calls
    with pytest.raises(EmptyCartError):
        asyncio.run(customer.cart.checkout("whatsapp", "+62 812 0000"))
    assert db.calls == calls
    assert db.tables["orders"] == {}


def test_contact_info_is_required(db, customer):
    asyncio.run(customer.cart.add(1, 1))
    with pytest.raises(FormError) as exc:
        asyncio.run(customer.cart.checkout("whatsapp", "   "))
    assert exc.value.errors == {"contact_info": "Please provide your contact information"}
    assert db.tables["orders"] == {}


def test_checkout_creates_order_and_clears_cart(db, customer):
    asyncio.run(customer.cart.add(1, 2))
    asyncio.run(customer.cart.add(4, 1))
    expected_total = customer.cart.total

    order = asyncio.run(customer.cart.checkout("instagram", "@bob", "no mayo"))

    assert order["status"] == "pending"
    assert order["total_amount"] == expected_total
    assert order["contact_method"] == "instagram"
    assert order["notes"] == "no mayo"
    items = [i for i in db.tables["order_items"].values() if i["order_id"] == order["id"]]
    assert sorted((i["product_id"], i["quantity"]) for i in items) == [(1, 2), (4, 1)]
    assert customer.cart.items == []
    assert customer.cart.total == 0


def test_order_item_price_is_frozen_at_order_time(db, customer):
    price_then = db.tables["products"][1]["price"]
    asyncio.run(customer.cart.add(1, 1))
    order = asyncio.run(customer.cart.checkout("whatsapp", "0812"))

    db.tables["products"][1]["price"] = price_then + 5000

    item = next(i for i in db.tables["order_items"].values() if i["order_id"] == order["id"])
    assert item["price"] == price_then


def test_deleted_product_in_cart_blocks_checkout(db, customer):
    asyncio.run(customer.cart.add(1, 2))
    asyncio.run(customer.cart.add(3, 1))
    db.tables["products"].pop(1)
    asyncio.run(customer.cart.refresh())

    calls = db.calls
    with pytest.raises(FormError) as exc:
        asyncio.run(customer.cart.checkout("whatsapp", "0812"))
    assert "no longer available" in exc.value.errors["cart"]
    assert db.calls == calls
    assert db.tables["orders"] == {}
    assert db.tables["order_items"] == {}
    # nothing is cleared; the customer removes the stale row and retries
    assert customer.cart.count == 3


def test_failed_items_insert_removes_the_order(db, make_session):
    s = make_session(FailingItemsInsert(db))
    asyncio.run(s.auth.sign_up("dina@example.com", "secret123", "dina"))
    asyncio.run(s.cart.add(2, 1))

    with pytest.raises(BackendError):
        asyncio.run(s.cart.checkout("whatsapp", "0813"))

    assert db.tables["orders"] == {}
    # the cart survives so the customer can retry
    assert s.cart.count == 1


def test_failed_compensating_delete_still_raises_original_error(db, make_session):
    s = make_session(FailingItemsInsert(db, fail_delete=True))
    asyncio.run(s.auth.sign_up("eko@example.com", "secret123", "eko"))
    asyncio.run(s.cart.add(2, 1))

    with pytest.raises(BackendError) as exc:
        asyncio.run(s.cart.checkout("whatsapp", "0813"))
    assert exc.value.code == "23503"


# ---------------------------
# Route level
# ---------------------------
def _customer_client(email="fara@example.com", username="fara"):
    client = TestClient(app)
    client.post("/reset")
    r = client.post("/register", json={"username": username, "email": email, "password": "secret123",
                                       "confirm_password": "secret123"})
    assert r.status_code == 201
    return client


def test_checkout_route_with_same_idempotency_key_returns_first_order():
    client = _customer_client()
    client.post("/user/cart", json={"product_id": 1, "quantity": 2})

    r1 = client.post("/user/checkout", json={"contact_info": "0812"}, headers={"Idempotency-Key": "k1"})
    r2 = client.post("/user/checkout", json={"contact_info": "0812"}, headers={"Idempotency-Key": "k1"})

    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r1.json()["order"]["id"] == r2.json()["order"]["id"]
    assert len(transport.tables["orders"]) == 1


def test_checkout_route_empty_cart():
    client = _customer_client()
    r = client.post("/user/checkout", json={"contact_info": "0812"})
    assert r.status_code == 400
    assert r.json()["detail"] == "cart empty"
    assert r.json()["errors"] == {"cart": "Your cart is empty"}


def test_checkout_route_defaults_to_whatsapp():
    client = _customer_client()
    client.post("/user/cart", json={"product_id": 3})
    r = client.post("/user/checkout", json={"contact_info": "0812 555"})
    assert r.status_code == 201
    body = r.json()
    assert body["order"]["contact_method"] == "whatsapp"
    assert "whatsapp" in body["message"]
    assert client.get("/user/cart").json()["count"] == 0
