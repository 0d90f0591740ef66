import asyncio
import uuid
from sdk.fizzpan import FizzpanClient


async def submit(client, label, key):
    try:
        r = await client.checkout_async("@alice.eats", "instagram", idempotency_key=key)
        body = r.json()
        if r.status_code in (200, 201):
            print(f"✅ {label}: order {body['order']['id']} (Total: Rp {body['order']['total_amount']:,.0f})")
        elif r.status_code == 409:
            print(f"⏳ {label}: same checkout already in progress")
        else:
            print(f"⚠️  {label}: {r.status_code} {body.get('detail')}")
    except Exception as e:
        print(f"❌ {label} unexpected failure: {e}")


async def main():
    c = FizzpanClient(base_url="http://127.0.0.1:8085")

    # Reset store if available
    try:
        c.reset()
    except Exception:
        pass

    c.register("alice", "alice@example.com", "secret123")
    product = c.list_products()[0]
    c.add_to_cart(product["id"], 3)
    print(f"\n🛒 Cart before checkout: {c.view_cart()['count']} x {product['name']}")

    # a double-clicked checkout button: both submits carry the same key
    key = uuid.uuid4().hex
    print("\n⚡ Submitting the same checkout twice...")
    await asyncio.gather(
        submit(c, "first click", key),
        submit(c, "second click", key),
    )

    # a retry after both finished replays the stored result
    await submit(c, "retry", key)

    orders = c.list_orders()
    print(f"\n🧾 Orders on record: {len(orders)}")
    print("🛒 Cart after checkout:", c.view_cart()["count"])


if __name__ == "__main__":
    asyncio.run(main())
