import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool

from . import services
from .config import Settings
from .core import (
    AddToCartIn, AssignUsersIn, CheckoutIn, LoginIn, ProductIn, ProductUpdate,
    ProfileIn, ProfileUpdate, RegisterIn, StatusUpdateIn, TableIn,
    check_image_limits, clean_values, validate_login, validate_product,
    validate_product_update, validate_profile, validate_quantity,
    validate_register, validate_table,
)
from .errors import BackendError, NotFoundError
from .legacy import LegacyApiClient
from .models import AppUser, ContactMethod, OrderStatus, RowId
from .session import AppSession, SessionRegistry

# This file contains the logic behind every page and form of the app.

logger = logging.getLogger(__name__)

# (user id, Idempotency-Key) -> first checkout result, or IN_PROGRESS
IDEMPOTENCY: Dict[Tuple[str, str], Any] = {}
IN_PROGRESS = object()

CATEGORIES = ("sweet", "savory")

ADMIN_MENU = [
    {"label": "Users", "path": "/admin/users", "description": "Manage user profiles"},
    {"label": "Products", "path": "/admin/food-list", "description": "Manage food menu"},
    {"label": "Orders", "path": "/admin/all-orders-list", "description": "View all orders"},
    {"label": "Order Items", "path": "/admin/order-list", "description": "Order details"},
    {"label": "Carts", "path": "/admin/cart-list", "description": "Active shopping carts"},
    {"label": "Tables", "path": "/admin/table-list", "description": "Restaurant tables"},
    {"label": "Revenue", "path": "/admin/revenue", "description": "Income reports"},
]


def user_model(user: Optional[AppUser]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "username": user.username, "role": user.role.value}


def cart_model(s: AppSession) -> Dict[str, Any]:
    return {
        "items": [
            dict(item.model_dump(mode="json"), line_total=item.line_total) for item in s.cart.items
        ],
        "total": s.cart.total,
        "count": s.cart.count,
        "unavailable": [item.id for item in s.cart.items if item.product is None],
    }


def _require_legacy(s: AppSession) -> LegacyApiClient:
    if s.legacy is None:
        raise BackendError("Restaurant tables need the legacy API (set FIZZPAN_LEGACY_API_URL)", status_code=503)
    return s.legacy


# ---------------------------
# Public pages
# ---------------------------
async def landing_logic(s: AppSession):
    products = await services.get_products(s.backend)
    return {"page": "landing", "user": user_model(s.auth.user), "products": products[:6]}

async def login_page_logic(s: AppSession):
    return {"page": "login", "fields": ["email", "password"]}

async def login_logic(s: AppSession, payload: LoginIn):
    validate_login(payload)
    user = await s.auth.sign_in(payload.email, payload.password)
    await s.cart.refresh()
    logger.info("%s signed in as %s", user.email, user.role.value)
    return {"user": user_model(user), "redirect": user.home}

async def register_page_logic(s: AppSession):
    return {"page": "register", "fields": ["username", "email", "password", "confirm_password"]}

async def register_logic(s: AppSession, payload: RegisterIn):
    validate_register(payload)
    created = await s.auth.sign_up(payload.email, payload.password, payload.username.strip())
    if s.auth.user is not None:
        await s.cart.refresh()
        return {"user": user_model(s.auth.user), "redirect": s.auth.user.home,
                "message": "Registration successful"}
    return {"user_id": created.id if created else None, "redirect": "/login",
            "message": "Registration successful, please check your email to confirm the account"}

async def logout_logic(s: AppSession):
    await s.auth.sign_out()
    s.cart.reset()
    s.views.clear()
    return {"status": "signed out", "redirect": "/"}


# ---------------------------
# Customer pages
# ---------------------------
async def _menu(s: AppSession, category: Optional[str]):
    products = await services.get_products(s.backend)
    if category:
        products = [p for p in products if p.get("category") == category]
    return products

async def user_home_logic(s: AppSession, category: Optional[str] = None):
    return {
        "page": "user",
        "user": user_model(s.auth.user),
        "categories": list(CATEGORIES),
        "products": await _menu(s, category),
        "cart_count": s.cart.count,
    }

async def user_products_logic(s: AppSession, category: Optional[str] = None):
    return {"page": "products", "categories": list(CATEGORIES), "products": await _menu(s, category)}

async def user_orders_logic(s: AppSession, status: Optional[OrderStatus] = None):
    orders = await services.get_orders(s.backend, s.auth.user.id, role="user")
    if status is not None:
        orders = [o for o in orders if o.get("status") == status.value]
    return {"page": "orders", "orders": orders}

async def user_cart_logic(s: AppSession):
    await s.cart.refresh()
    return dict(cart_model(s), page="cart")

async def cart_add_logic(s: AppSession, payload: AddToCartIn):
    validate_quantity(payload.quantity)
    await s.cart.add(payload.product_id, payload.quantity)
    return cart_model(s)

async def cart_update_logic(s: AppSession, cart_id: RowId, quantity: int):
    validate_quantity(quantity)
    await s.cart.update(cart_id, quantity)
    return cart_model(s)

async def cart_remove_logic(s: AppSession, cart_id: RowId):
    await s.cart.remove(cart_id)
    return cart_model(s)

async def cart_clear_logic(s: AppSession):
    await s.cart.clear()
    return cart_model(s)

async def account_logic(s: AppSession):
    try:
        profile = await services.get_profile_by_id(s.backend, s.auth.user.id)
    except NotFoundError:
        profile = None
    return {"page": "account", "user": user_model(s.auth.user), "profile": profile}

async def account_update_logic(s: AppSession, payload: ProfileUpdate, settings: Settings):
    # customers cannot change their own role
    values = clean_values(payload)
    values.pop("role", None)
    check_image_limits(values, settings.max_image_bytes, settings.max_payload_bytes)
    profile = await services.update_profile(s.backend, s.auth.user.id, values)
    if "username" in values:
        s.storage.set_item(f"user_username_{s.auth.user.id}", values["username"])
        s.auth.user = s.auth.user.model_copy(update={"username": values["username"]})
    return {"user": user_model(s.auth.user), "profile": profile}

async def checkout_page_logic(s: AppSession):
    await s.cart.refresh()
    return dict(cart_model(s), page="checkout",
                contact_methods=[m.value for m in ContactMethod],
                default_contact_method=ContactMethod.WHATSAPP.value)

async def checkout_logic(s: AppSession, payload: CheckoutIn, idempotency_key: Optional[str]):
    cache_key = (s.auth.user.id, idempotency_key) if idempotency_key else None
    if cache_key is not None:
        prev = IDEMPOTENCY.get(cache_key)
        if prev is IN_PROGRESS:
            raise HTTPException(status_code=409, detail="A checkout with this Idempotency-Key is in progress")
        if prev is not None:
            return prev
        IDEMPOTENCY[cache_key] = IN_PROGRESS

    try:
        order = await s.cart.checkout(payload.contact_method, payload.contact_info, payload.notes)
    except Exception:
        if cache_key is not None:
            IDEMPOTENCY.pop(cache_key, None)
        raise

    result = {
        "status": "order placed",
        "order": order,
        "message": f"We'll contact you via {order['contact_method']} at {order['contact_info']} shortly.",
    }
    if cache_key is not None:
        IDEMPOTENCY[cache_key] = result
    return result


# ---------------------------
# Admin list screens
# ---------------------------
Loader = Callable[[AppSession], Awaitable[Any]]
Deleter = Callable[[AppSession, RowId], Awaitable[Any]]

async def _load_all_orders(s: AppSession):
    if s.legacy is not None:
        return await run_in_threadpool(s.legacy.list_orders)
    return await services.get_orders(s.backend, role="admin")

async def _delete_order(s: AppSession, order_id: RowId):
    if s.legacy is not None:
        return await run_in_threadpool(s.legacy.delete_order, order_id)
    return await services.delete_order(s.backend, order_id)

async def _load_tables(s: AppSession):
    return await run_in_threadpool(_require_legacy(s).list_tables)

LIST_SCREENS: Dict[str, Tuple[Loader, Optional[Deleter]]] = {
    "users": (lambda s: services.get_profiles(s.backend),
              lambda s, row_id: services.delete_profile(s.backend, row_id)),
    "food-list": (lambda s: services.get_products(s.backend),
                  lambda s, row_id: services.delete_product(s.backend, row_id)),
    "order-list": (lambda s: services.get_order_items(s.backend),
                   lambda s, row_id: services.delete_order_item(s.backend, row_id)),
    "all-orders-list": (_load_all_orders, _delete_order),
    "cart-list": (lambda s: services.get_all_carts(s.backend),
                  lambda s, row_id: services.delete_cart_row(s.backend, row_id)),
    "table-list": (_load_tables, None),
}

async def admin_home_logic(s: AppSession):
    return {"page": "admin", "user": user_model(s.auth.user), "menu": ADMIN_MENU}

async def admin_list_logic(s: AppSession, screen: str, page: Optional[int] = None,
                           rows_per_page: Optional[int] = None):
    loader, _ = LIST_SCREENS[screen]
    first_visit = screen not in s.views
    view = s.view(screen)
    # a plain visit downloads the table; paging only slices what is already here
    if first_visit or (page is None and rows_per_page is None):
        view.load(await loader(s))
    if rows_per_page is not None:
        view.set_rows_per_page(rows_per_page)
    if page is not None:
        view.set_page(page)
    return dict(view.page_model(), page_name=screen)

async def admin_delete_logic(s: AppSession, screen: str, row_id: RowId):
    _, deleter = LIST_SCREENS[screen]
    if deleter is None:
        raise HTTPException(status_code=405, detail=f"rows of {screen} cannot be deleted")
    await deleter(s, row_id)
    s.view(screen).remove(row_id)
    logger.info("Admin %s deleted %s row %s", s.auth.user.id, screen, row_id)
    return dict(s.view(screen).page_model(), page_name=screen)


# ---------------------------
# Admin forms
# ---------------------------
async def add_user_logic(s: AppSession, payload: ProfileIn, settings: Settings):
    validate_profile(payload)
    values = clean_values(payload)
    if not values.get("avatar_url"):
        values.pop("avatar_url", None)
    check_image_limits(values, settings.max_image_bytes, settings.max_payload_bytes)
    if s.legacy is not None:
        created = await run_in_threadpool(s.legacy.create_profile, values)
    else:
        values.pop("email", None)
        created = await services.create_profile(s.backend, dict(values, id=str(uuid.uuid4())))
    return {"message": "User has been added successfully", "profile": created, "redirect": "/admin/users"}

async def edit_user_page_logic(s: AppSession, profile_id: str):
    if s.legacy is not None:
        profile = await run_in_threadpool(s.legacy.get_profile, profile_id)
    else:
        profile = await services.get_profile_by_id(s.backend, profile_id)
    return {"page": "edit-user", "profile": profile}

async def edit_user_logic(s: AppSession, profile_id: str, payload: ProfileUpdate, settings: Settings,
                          registry: Optional[SessionRegistry] = None):
    values = clean_values(payload)
    check_image_limits(values, settings.max_image_bytes, settings.max_payload_bytes)
    if s.legacy is not None:
        profile = await run_in_threadpool(s.legacy.update_profile, profile_id, values)
    else:
        values.pop("email", None)
        profile = await services.update_profile(s.backend, profile_id, values)
    # the cached role lives in each of that user's app sessions
    if registry is not None:
        registry.forget_cached_role(profile_id)
    else:
        s.auth.forget_cached_role(profile_id)
    return {"message": "User role updated successfully", "profile": profile, "redirect": "/admin/users"}

async def add_food_page_logic(s: AppSession, settings: Settings):
    return {
        "page": "add-food",
        "categories": list(CATEGORIES),
        "max_image_bytes": settings.max_image_bytes,
        "max_payload_bytes": settings.max_payload_bytes,
    }

async def add_food_logic(s: AppSession, payload: ProductIn, settings: Settings):
    validate_product(payload)
    values = clean_values(payload)
    check_image_limits(values, settings.max_image_bytes, settings.max_payload_bytes)
    if s.legacy is not None:
        created = await run_in_threadpool(s.legacy.create_product, values)
    else:
        created = await services.create_product(s.backend, values)
    return {"message": "Product has been added successfully", "product": created, "redirect": "/admin/food-list"}

async def edit_food_page_logic(s: AppSession, product_id: RowId):
    return {"page": "edit-food", "categories": list(CATEGORIES),
            "product": await services.get_product_by_id(s.backend, product_id)}

async def edit_food_logic(s: AppSession, product_id: RowId, payload: ProductUpdate, settings: Settings):
    validate_product_update(payload)
    values = clean_values(payload)
    if not values:
        raise HTTPException(status_code=400, detail="nothing to update")
    check_image_limits(values, settings.max_image_bytes, settings.max_payload_bytes)
    product = await services.update_product(s.backend, product_id, values)
    return {"message": "Product has been updated successfully", "product": product, "redirect": "/admin/food-list"}

async def order_detail_logic(s: AppSession, order_id: RowId):
    return {"page": "order-detail", "order": await services.get_order_by_id(s.backend, order_id),
            "statuses": [st.value for st in OrderStatus]}

async def order_status_logic(s: AppSession, order_id: RowId, payload: StatusUpdateIn):
    if s.legacy is not None:
        await run_in_threadpool(s.legacy.update_order_status, order_id, payload.status.value)
        order = {"id": order_id, "status": payload.status.value}
    else:
        order = await services.update_order_status(s.backend, order_id, payload.status.value)
    view = s.views.get("all-orders-list")
    row = view.find(order_id) if view else None
    if row is not None:
        row["status"] = payload.status.value
    return {"message": "Order status updated", "order": order}

async def add_table_logic(s: AppSession, payload: TableIn):
    validate_table(payload)
    created = await run_in_threadpool(_require_legacy(s).create_table, clean_values(payload))
    return {"message": "Table has been added successfully", "table": created, "redirect": "/admin/table-list"}

async def assign_users_logic(s: AppSession, table_id: RowId, payload: AssignUsersIn):
    if not payload.user_ids:
        raise HTTPException(status_code=400, detail="select at least one user")
    await run_in_threadpool(_require_legacy(s).assign_users_to_table, table_id, payload.user_ids)
    return {"message": "Users assigned", "table_id": table_id, "user_ids": payload.user_ids}

async def revenue_logic(s: AppSession):
    return dict(await services.revenue_summary(s.backend), page="revenue")
