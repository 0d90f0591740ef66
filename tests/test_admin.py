# tests/test_admin.py
import pytest
from fastapi.testclient import TestClient

from fizzpan.admin import ListView
from fizzpan.errors import FormError
from fizzpan.main import app, transport

client = TestClient(app)


def reset():
    client.post("/reset")
    client.cookies.clear()


def login_admin():
    reset()
    r = client.post("/login", json={"email": "admin@fizzpan.local", "password": "admin123"})
    assert r.status_code == 200
    assert r.json()["redirect"] == "/admin"


def _rows(n):
    return [{"id": i, "name": f"row {i}"} for i in range(1, n + 1)]


# ---------------------------
# In-memory pagination
# ---------------------------
def test_list_view_slices_pages():
    view = ListView(_rows(12), rows_per_page=5)
    assert view.total == 12
    assert view.total_pages == 3
    view.set_page(2)
    assert [r["id"] for r in view.visible] == [11, 12]


def test_list_view_empty():
    view = ListView([], rows_per_page=10)
    assert view.total_pages == 0
    assert view.visible == []
    assert view.page_model()["rows"] == []


def test_remove_filters_row_without_reloading():
    view = ListView(_rows(7), rows_per_page=5)
    assert view.remove("3")  # ids from URLs arrive as strings
    assert [r["id"] for r in view.visible] == [1, 2, 4, 5, 6]
    assert view.total == 6


def test_emptied_last_page_moves_back():
    view = ListView(_rows(11), rows_per_page=5)
    view.set_page(2)
    view.remove(11)
    assert view.page == 1
    assert [r["id"] for r in view.visible] == [6, 7, 8, 9, 10]


def test_rows_per_page_choices():
    view = ListView(_rows(30), rows_per_page=10)
    view.set_page(2)
    view.set_rows_per_page(25)
    assert view.page == 0
    with pytest.raises(FormError):
        view.set_rows_per_page(7)


# ---------------------------
# Screens
# ---------------------------
def test_admin_home_lists_menu():
    login_admin()
    body = client.get("/admin").json()
    assert "/admin/food-list" in [m["path"] for m in body["menu"]]


def test_delete_removes_row_from_visible_page_without_refetch():
    login_admin()
    page = client.get("/admin/food-list").json()
    assert page["total"] == 5
    target = page["rows"][0]["id"]

    calls = transport.calls
    r = client.delete(f"/admin/food-list/{target}")
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 4
    assert target not in [row["id"] for row in body["rows"]]
    # one backend call: the delete itself
    assert transport.calls == calls + 1


def test_paging_does_not_refetch():
    login_admin()
    client.get("/admin/food-list")
    calls = transport.calls
    body = client.get("/admin/food-list", params={"rows_per_page": 5, "page": 0}).json()
    assert body["rows_per_page"] == 5
    assert len(body["rows"]) == 5
    assert transport.calls == calls


def test_unknown_screen_is_404():
    login_admin()
    assert client.get("/admin/nope").status_code == 404


def test_add_food_validation():
    login_admin()
    r = client.post("/admin/add-food", json={"name": "ab", "description": "short", "price": -1})
    assert r.status_code == 400
    errors = r.json()["errors"]
    assert errors["name"] == "Product name must be at least 3 characters"
    assert errors["description"] == "Description must be at least 10 characters"
    assert errors["price"] == "Price must be positive"
    assert errors["stock"] == "Stock is required"


def test_add_food_rejects_oversized_payload():
    login_admin()
    image = "data:image/png;base64," + "A" * (1024 * 1024 + 100)
    r = client.post("/admin/add-food", json={"name": "Taiyaki Besar", "description": "A very big taiyaki",
                                             "price": 30000, "stock": 3, "image": image})
    assert r.status_code == 400
    assert r.json()["detail"] == "Image too large"
    assert len(transport.tables["products"]) == 5


def test_add_and_edit_food():
    login_admin()
    r = client.post("/admin/add-food", json={"name": "Taiyaki Pisang", "description": "Banana and caramel filling",
                                             "price": 16000, "stock": 12, "category": "sweet"})
    assert r.status_code == 201
    product_id = r.json()["product"]["id"]

    r = client.put(f"/admin/edit-food/{product_id}", json={"price": 16500})
    assert r.status_code == 200
    assert r.json()["product"]["price"] == 16500
    assert client.get(f"/admin/edit-food/{product_id}").json()["product"]["name"] == "Taiyaki Pisang"


def test_add_user_without_legacy_api_creates_profile():
    login_admin()
    r = client.post("/admin/add-user", json={"username": "kasir", "role": "admin"})
    assert r.status_code == 201
    profile_id = r.json()["profile"]["id"]
    assert transport.tables["profiles"][profile_id]["role"] == "admin"

    r = client.put(f"/admin/edit-user/{profile_id}", json={"role": "user"})
    assert r.status_code == 200
    assert client.get(f"/admin/edit-user/{profile_id}").json()["profile"]["role"] == "user"


def test_table_screens_need_legacy_api():
    login_admin()
    r = client.get("/admin/table-list")
    assert r.status_code == 503
    assert "legacy API" in r.json()["detail"]


def _place_order(username, email):
    shopper = TestClient(app)
    shopper.post("/register", json={"username": username, "email": email, "password": "secret123",
                                    "confirm_password": "secret123"})
    shopper.post("/user/cart", json={"product_id": 2, "quantity": 2})
    return shopper.post("/user/checkout", json={"contact_info": "0812"}).json()["order"]


def test_order_status_and_revenue():
    login_admin()
    order = _place_order("lina", "lina@example.com")
    _place_order("mira", "mira@example.com")

    detail = client.get(f"/admin/orders/{order['id']}").json()
    assert detail["order"]["items"][0]["product"]["id"] == 2

    r = client.put(f"/admin/orders/{order['id']}/status", json={"status": "completed"})
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "completed"

    report = client.get("/admin/revenue").json()
    assert report["total_revenue"] == order["total_amount"]
    assert report["total_orders"] == 2
    assert report["completed_orders"] == 1
    assert report["pending_orders"] == 1
    assert report["total_products"] == 5
    assert report["total_users"] == 3
    assert report["recent_orders"][0]["profile"]["username"] == "lina"


def test_status_update_rejects_unknown_status():
    login_admin()
    order = _place_order("nina", "nina@example.com")
    r = client.put(f"/admin/orders/{order['id']}/status", json={"status": "shipped-ish"})
    assert r.status_code == 422


def test_customer_orders_filtered_by_status():
    login_admin()
    shopper = TestClient(app)
    shopper.post("/register", json={"username": "oki", "email": "oki@example.com", "password": "secret123",
                                    "confirm_password": "secret123"})
    shopper.post("/user/cart", json={"product_id": 1})
    order = shopper.post("/user/checkout", json={"contact_info": "0812"}).json()["order"]
    client.put(f"/admin/orders/{order['id']}/status", json={"status": "processing"})

    assert len(shopper.get("/user/orders").json()["orders"]) == 1
    assert shopper.get("/user/orders", params={"status": "pending"}).json()["orders"] == []
    assert len(shopper.get("/user/orders", params={"status": "processing"}).json()["orders"]) == 1
