#!/usr/bin/env python
import uuid
from sdk.fizzpan import FizzpanClient

ADMIN_EMAIL = "admin@fizzpan.local"
ADMIN_PASSWORD = "admin123"


def main():
    admin = FizzpanClient(base_url="http://127.0.0.1:8085")
    customer = FizzpanClient(base_url="http://127.0.0.1:8085")

    # -----------------------------
    # Reset everything for demo
    # -----------------------------
    print("Resetting store...")
    print(admin.reset())

    # -----------------------------
    # Admin adds a product
    # -----------------------------
    print("\nSigning in as admin...")
    print(admin.login(ADMIN_EMAIL, ADMIN_PASSWORD))
    print("\nAdding a product...")
    added = admin.add_food("Taiyaki Keju Cokelat", "Chocolate and cheese, half and half.", 20000, 15,
                           category="sweet")
    print(added)

    # -----------------------------
    # Customer registers and browses
    # -----------------------------
    print("\nRegistering a customer...")
    print(customer.register("alice", "alice@example.com", "secret123"))
    products = customer.list_products("sweet")
    print("\nSweet menu:")
    for p in products:
        print(f"  {p['id']}: {p['name']} Rp {p['price']:,.0f}")

    # -----------------------------
    # Add products to cart
    # -----------------------------
    print("\nAdding products to cart...")
    customer.add_to_cart(products[0]["id"], 2)
    print(customer.add_to_cart(added["product"]["id"], 1))

    # -----------------------------
    # Place order
    # -----------------------------
    print("\nPlacing order...")
    r = customer.checkout("+62 812 0000 1111", "whatsapp", "extra crispy please", str(uuid.uuid4()))
    print(r.status_code, r.json())
    order_id = r.json()["order"]["id"]

    print("\nCart after checkout:")
    print(customer.view_cart())

    # -----------------------------
    # Admin completes the order
    # -----------------------------
    print("\nAdmin marks the order completed...")
    print(admin.update_order_status(order_id, "completed"))
    print("\nRevenue:")
    print(admin.revenue())

    # -----------------------------
    # List orders
    # -----------------------------
    print("\nCustomer orders...")
    print(customer.list_orders())


if __name__ == "__main__":
    main()
