import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .backend import BackendClient
from .errors import BackendError
from .models import OrderLine, OrderStatus, RowId

# Thin wrappers over the backend tables. No business logic beyond shaping
# the queries; errors from the backend propagate to the caller.

logger = logging.getLogger(__name__)

CART_COLUMNS = "id, quantity, product:product_id (id, name, price, image, description)"
ORDER_COLUMNS = """
    id, user_id, status, total_amount, created_at, updated_at,
    contact_method, contact_info, notes,
    items:order_items (id, quantity, price, product:product_id (id, name, image))
"""


# ---------------------------
# Products
# ---------------------------
async def get_products(client: BackendClient) -> List[Dict[str, Any]]:
    res = await client.table("products").select("*").order("created_at", desc=True).execute()
    return res.data or []


async def get_product_by_id(client: BackendClient, product_id: RowId) -> Dict[str, Any]:
    res = await client.table("products").select("*").eq("id", product_id).single().execute()
    return res.data


async def create_product(client: BackendClient, product_data: Dict[str, Any]) -> Dict[str, Any]:
    res = await client.table("products").insert(product_data).select().single().execute()
    return res.data


async def update_product(client: BackendClient, product_id: RowId, updates: Dict[str, Any]) -> Dict[str, Any]:
    res = await client.table("products").update(updates).eq("id", product_id).select().single().execute()
    return res.data


async def delete_product(client: BackendClient, product_id: RowId) -> None:
    await client.table("products").delete().eq("id", product_id).execute()


# ---------------------------
# Profiles
# ---------------------------
async def get_profiles(client: BackendClient) -> List[Dict[str, Any]]:
    res = await client.table("profiles").select("*").order("created_at", desc=True).execute()
    return res.data or []


async def get_profile_by_id(client: BackendClient, profile_id: str) -> Dict[str, Any]:
    res = await client.table("profiles").select("*").eq("id", profile_id).single().execute()
    return res.data


async def get_profile_role(client: BackendClient, profile_id: str) -> Dict[str, Any]:
    res = await client.table("profiles").select("role, username").eq("id", profile_id).single().execute()
    return res.data


async def create_profile(client: BackendClient, profile_data: Dict[str, Any]) -> Dict[str, Any]:
    res = await client.table("profiles").insert(profile_data).select().single().execute()
    return res.data


async def update_profile(client: BackendClient, profile_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    values = dict(updates, updated_at=datetime.now(timezone.utc).isoformat())
    res = await client.table("profiles").update(values).eq("id", profile_id).select().single().execute()
    return res.data


async def delete_profile(client: BackendClient, profile_id: str) -> None:
    await client.table("profiles").delete().eq("id", profile_id).execute()


# ---------------------------
# Carts
# ---------------------------
async def get_cart(client: BackendClient, user_id: str) -> List[Dict[str, Any]]:
    res = await client.table("carts").select(CART_COLUMNS).eq("user_id", user_id).execute()
    return res.data or []


async def add_to_cart(client: BackendClient, user_id: str, product_id: RowId, quantity: int = 1) -> Dict[str, Any]:
    existing = (
        await client.table("carts")
        .select("id, quantity")
        .eq("user_id", user_id)
        .eq("product_id", product_id)
        .maybe_single()
        .execute()
    ).data

    if existing:
        res = await (
            client.table("carts")
            .update({"quantity": existing["quantity"] + quantity})
            .eq("id", existing["id"])
            .select()
            .single()
            .execute()
        )
        return res.data

    res = await (
        client.table("carts")
        .insert({"user_id": user_id, "product_id": product_id, "quantity": quantity})
        .select()
        .single()
        .execute()
    )
    return res.data


async def update_cart_item(client: BackendClient, cart_id: RowId, updates: Dict[str, Any]) -> Dict[str, Any]:
    res = await client.table("carts").update(updates).eq("id", cart_id).select().single().execute()
    return res.data


async def remove_from_cart(client: BackendClient, cart_id: RowId) -> None:
    await client.table("carts").delete().eq("id", cart_id).execute()


async def clear_cart(client: BackendClient, user_id: str) -> None:
    await client.table("carts").delete().eq("user_id", user_id).execute()


async def get_all_carts(client: BackendClient) -> List[Dict[str, Any]]:
    res = await (
        client.table("carts")
        .select("*, product:product_id (id, name, price, image), profile:user_id (username)")
        .order("created_at", desc=True)
        .execute()
    )
    return res.data or []


async def delete_cart_row(client: BackendClient, cart_id: RowId) -> None:
    await client.table("carts").delete().eq("id", cart_id).execute()


# ---------------------------
# Orders
# ---------------------------
async def create_order(
    client: BackendClient,
    user_id: str,
    items: List[OrderLine],
    total: float,
    contact_method: str,
    contact_info: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    order = (
        await client.table("orders")
        .insert({
            "user_id": user_id,
            "status": OrderStatus.PENDING.value,
            "total_amount": total,
            "contact_method": contact_method,
            "contact_info": contact_info,
            "notes": notes,
        })
        .select()
        .single()
        .execute()
    ).data

    order_items = [
        {"order_id": order["id"], "product_id": item.product_id, "quantity": item.quantity, "price": item.price}
        for item in items
    ]
    try:
        await client.table("order_items").insert(order_items).execute()
    except BackendError:
        # two separate inserts: undo the order so no empty order is left behind
        logger.error("Inserting items for order %s failed, removing the order", order["id"])
        try:
            await client.table("orders").delete().eq("id", order["id"]).execute()
        except BackendError:
            logger.exception("Could not remove order %s after the failed item insert", order["id"])
        raise
    return order


async def get_orders(client: BackendClient, user_id: Optional[str] = None, role: str = "user") -> List[Dict[str, Any]]:
    query = client.table("orders").select(ORDER_COLUMNS).order("created_at", desc=True)
    if role == "user":
        query = query.eq("user_id", user_id)
    res = await query.execute()
    return res.data or []


async def get_order_by_id(client: BackendClient, order_id: RowId) -> Dict[str, Any]:
    res = await client.table("orders").select(ORDER_COLUMNS).eq("id", order_id).single().execute()
    return res.data


async def update_order_status(client: BackendClient, order_id: RowId, status: str) -> Dict[str, Any]:
    res = await client.table("orders").update({"status": status}).eq("id", order_id).select().single().execute()
    return res.data


async def delete_order(client: BackendClient, order_id: RowId) -> None:
    await client.table("order_items").delete().eq("order_id", order_id).execute()
    await client.table("orders").delete().eq("id", order_id).execute()


async def get_order_items(client: BackendClient) -> List[Dict[str, Any]]:
    res = await (
        client.table("order_items")
        .select("*, product:product_id (name, price)")
        .order("created_at", desc=True)
        .execute()
    )
    return res.data or []


async def delete_order_item(client: BackendClient, item_id: RowId) -> None:
    await client.table("order_items").delete().eq("id", item_id).execute()


async def revenue_summary(client: BackendClient) -> Dict[str, Any]:
    orders = (await client.table("orders").select("*").execute()).data or []
    completed = [o for o in orders if o.get("status") == OrderStatus.COMPLETED.value]
    pending = [o for o in orders if o.get("status") == OrderStatus.PENDING.value]
    cancelled = [o for o in orders if o.get("status") == OrderStatus.CANCELLED.value]

    products_count = (await client.table("products").select("*", count="exact", head=True).execute()).count
    users_count = (await client.table("profiles").select("*", count="exact", head=True).execute()).count

    recent = (
        await client.table("orders")
        .select("*, profile:user_id (username)")
        .eq("status", OrderStatus.COMPLETED.value)
        .order("created_at", desc=True)
        .limit(5)
        .execute()
    ).data or []

    return {
        "total_revenue": sum(float(o.get("total_amount") or 0) for o in completed),
        "total_orders": len(orders),
        "completed_orders": len(completed),
        "pending_orders": len(pending),
        "cancelled_orders": len(cancelled),
        "total_products": products_count or 0,
        "total_users": users_count or 0,
        "recent_orders": recent,
    }
