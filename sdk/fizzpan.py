# sdk/fizzpan.py
import uuid
from typing import Any, Dict, List, Optional

import httpx
import requests
from rich import print


class FizzpanClient:
    """Talks to a running Fizzpan service. The requests session keeps the app-session cookie."""

    def __init__(self, base_url: str = "http://localhost:8085", timeout: int = 10):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _json(self, r: requests.Response) -> Any:
        r.raise_for_status()
        return r.json()

    def reset(self):
        return self.session.post(self._url("/reset"), timeout=self.timeout).json()

    def _make_idempotency_key(self, provided: Optional[str]) -> str:
        return provided if provided else uuid.uuid4().hex

    # Public pages
    def landing(self):
        return self._json(self.session.get(self._url("/"), timeout=self.timeout))

    def login(self, email: str, password: str):
        return self._json(self.session.post(self._url("/login"), json={"email": email, "password": password},
                                            timeout=self.timeout))

    def register(self, username: str, email: str, password: str, confirm_password: Optional[str] = None):
        payload = {
            "username": username,
            "email": email,
            "password": password,
            "confirm_password": password if confirm_password is None else confirm_password,
        }
        return self._json(self.session.post(self._url("/register"), json=payload, timeout=self.timeout))

    def logout(self):
        return self._json(self.session.post(self._url("/logout"), timeout=self.timeout))

    # Storefront
    def home(self, category: Optional[str] = None):
        params = {"category": category} if category else {}
        return self._json(self.session.get(self._url("/user"), params=params, timeout=self.timeout))

    def list_products(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"category": category} if category else {}
        r = self.session.get(self._url("/user/products"), params=params, timeout=self.timeout)
        return self._json(r)["products"]

    def list_orders(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else {}
        return self._json(self.session.get(self._url("/user/orders"), params=params, timeout=self.timeout))["orders"]

    def account(self):
        return self._json(self.session.get(self._url("/user/account"), timeout=self.timeout))

    def update_account(self, **updates):
        return self._json(self.session.put(self._url("/user/account"), json=updates, timeout=self.timeout))

    # Cart
    def view_cart(self):
        return self._json(self.session.get(self._url("/user/cart"), timeout=self.timeout))

    def add_to_cart(self, product_id: Any, quantity: int = 1):
        r = self.session.post(self._url("/user/cart"), json={"product_id": product_id, "quantity": quantity},
                              timeout=self.timeout)
        return self._json(r)

    def update_cart_item(self, cart_id: Any, quantity: int):
        r = self.session.put(self._url(f"/user/cart/{cart_id}"), json={"quantity": quantity}, timeout=self.timeout)
        return self._json(r)

    def remove_from_cart(self, cart_id: Any):
        return self._json(self.session.delete(self._url(f"/user/cart/{cart_id}"), timeout=self.timeout))

    def clear_cart(self):
        return self._json(self.session.delete(self._url("/user/cart"), timeout=self.timeout))

    # -----------------------
    # Checkout / Place order
    # -----------------------
    def checkout(self, contact_info: str, contact_method: str = "whatsapp", notes: Optional[str] = None,
                 idempotency_key: Optional[str] = None):
        key = self._make_idempotency_key(idempotency_key)
        headers = {"Idempotency-Key": key}
        payload = {"contact_method": contact_method, "contact_info": contact_info, "notes": notes}
        r = self.session.post(self._url("/user/checkout"), json=payload, headers=headers, timeout=self.timeout)
        # do not raise here; callers inspect 400/409 bodies
        return r

    async def checkout_async(self, contact_info: str, contact_method: str = "whatsapp",
                             notes: Optional[str] = None, idempotency_key: Optional[str] = None):
        key = self._make_idempotency_key(idempotency_key)
        headers = {"Idempotency-Key": key}
        payload = {"contact_method": contact_method, "contact_info": contact_info, "notes": notes}
        cookies = self.session.cookies.get_dict()
        async with httpx.AsyncClient(timeout=self.timeout, cookies=cookies) as client:
            return await client.post(self._url("/user/checkout"), json=payload, headers=headers)

    # Admin
    def admin_list(self, screen: str, page: Optional[int] = None, rows_per_page: Optional[int] = None):
        params = {}
        if page is not None:
            params["page"] = page
        if rows_per_page is not None:
            params["rows_per_page"] = rows_per_page
        return self._json(self.session.get(self._url(f"/admin/{screen}"), params=params, timeout=self.timeout))

    def admin_delete(self, screen: str, row_id: Any):
        return self._json(self.session.delete(self._url(f"/admin/{screen}/{row_id}"), timeout=self.timeout))

    def add_user(self, username: str, role: str = "user", avatar_url: str = ""):
        payload = {"username": username, "role": role, "avatar_url": avatar_url}
        return self._json(self.session.post(self._url("/admin/add-user"), json=payload, timeout=self.timeout))

    def get_user(self, profile_id: str):
        return self._json(self.session.get(self._url(f"/admin/edit-user/{profile_id}"), timeout=self.timeout))

    def edit_user(self, profile_id: str, **updates):
        r = self.session.put(self._url(f"/admin/edit-user/{profile_id}"), json=updates, timeout=self.timeout)
        return self._json(r)

    def add_food(self, name: str, description: str, price: float, stock: int, image: str = "",
                 category: Optional[str] = None):
        payload = {"name": name, "description": description, "price": price, "stock": stock,
                   "image": image, "category": category}
        return self._json(self.session.post(self._url("/admin/add-food"), json=payload, timeout=self.timeout))

    def get_food(self, product_id: Any):
        return self._json(self.session.get(self._url(f"/admin/edit-food/{product_id}"), timeout=self.timeout))

    def edit_food(self, product_id: Any, **updates):
        r = self.session.put(self._url(f"/admin/edit-food/{product_id}"), json=updates, timeout=self.timeout)
        return self._json(r)

    def get_order(self, order_id: Any):
        return self._json(self.session.get(self._url(f"/admin/orders/{order_id}"), timeout=self.timeout))

    def update_order_status(self, order_id: Any, status: str):
        r = self.session.put(self._url(f"/admin/orders/{order_id}/status"), json={"status": status},
                             timeout=self.timeout)
        return self._json(r)

    def add_table(self, name: str, capacity: int = 4):
        r = self.session.post(self._url("/admin/add-table"), json={"name": name, "capacity": capacity},
                              timeout=self.timeout)
        return self._json(r)

    def assign_users(self, table_id: Any, user_ids: List[str]):
        r = self.session.post(self._url(f"/admin/table-list/{table_id}/assign"), json={"user_ids": user_ids},
                              timeout=self.timeout)
        return self._json(r)

    def revenue(self):
        return self._json(self.session.get(self._url("/admin/revenue"), timeout=self.timeout))


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Fizzpan CLI")
    parser.add_argument("--base-url", default="http://127.0.0.1:8085")
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--password", required=True, help="Account password")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---------------------------
    # Storefront commands
    # ---------------------------
    lp = subparsers.add_parser("list-products", help="List the menu")
    lp.add_argument("--category", help="sweet or savory")

    add = subparsers.add_parser("add-to-cart", help="Add product to cart")
    add.add_argument("--product-id", required=True, help="Product ID")
    add.add_argument("--qty", type=int, default=1, help="Quantity to add")

    subparsers.add_parser("view-cart", help="View cart contents")

    po = subparsers.add_parser("checkout", help="Place an order for the cart")
    po.add_argument("--contact", required=True, help="WhatsApp number or Instagram handle")
    po.add_argument("--method", default="whatsapp", choices=["whatsapp", "instagram"])
    po.add_argument("--notes")

    subparsers.add_parser("list-orders", help="Your orders")

    # ---------------------------
    # Admin commands
    # ---------------------------
    al = subparsers.add_parser("admin-list", help="Show an admin list screen")
    al.add_argument("screen", choices=["users", "food-list", "order-list", "all-orders-list", "cart-list",
                                       "table-list"])
    al.add_argument("--page", type=int)

    subparsers.add_parser("revenue", help="Revenue report")

    args = parser.parse_args()
    c = FizzpanClient(base_url=args.base_url)
    c.login(args.email, args.password)

    if args.command == "list-products":
        print(c.list_products(args.category))
    elif args.command == "add-to-cart":
        print(c.add_to_cart(args.product_id, args.qty))
    elif args.command == "view-cart":
        print(c.view_cart())
    elif args.command == "checkout":
        print(c.checkout(args.contact, args.method, args.notes).json())
    elif args.command == "list-orders":
        print(c.list_orders())
    elif args.command == "admin-list":
        print(c.admin_list(args.screen, page=args.page))
    elif args.command == "revenue":
        print(c.revenue())
