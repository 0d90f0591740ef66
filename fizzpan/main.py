# fizzpan/main.py
import logging
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from . import views
from .backend import create_transport
from .config import get_settings
from .core import (
    AddToCartIn, AssignUsersIn, CheckoutIn, LoginIn, ProductIn, ProductUpdate,
    ProfileIn, ProfileUpdate, RegisterIn, StatusUpdateIn, TableIn, UpdateCartItemIn,
)
from .errors import BackendError, FizzpanError, FormError, RedirectRequired, SessionExpired
from .log import setup_logging
from .models import OrderStatus, Role
from .session import AppSession, SessionRegistry

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # or restrict to ["http://localhost:5173"]
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------
# Runtime state
# ---------------------------
transport = create_transport(settings)
registry = SessionRegistry(transport, settings)


@app.middleware("http")
async def attach_app_session(request: Request, call_next):
    app_session = registry.get(request.cookies.get(settings.session_cookie))
    created = app_session is None
    if created:
        app_session = registry.create()
    request.state.app_session = app_session
    response = await call_next(request)
    if created:
        # only browsers that signed in get a server-side session
        if app_session.has_state:
            registry.register(app_session)
            response.set_cookie(settings.session_cookie, app_session.id, httponly=True, samesite="lax")
        else:
            app_session.close()
    return response

# ---------------------------
# Error handlers
# ---------------------------
@app.exception_handler(RedirectRequired)
async def redirect_handler(request: Request, exc: RedirectRequired):
    return RedirectResponse(exc.location, status_code=303)

@app.exception_handler(SessionExpired)
async def session_expired_handler(request: Request, exc: SessionExpired):
    logger.warning("Backend rejected the session on %s: %s", request.url.path, exc.message)
    app_session: Optional[AppSession] = getattr(request.state, "app_session", None)
    response = RedirectResponse("/login", status_code=303)
    if app_session is not None:
        await app_session.expire()
        registry.drop(app_session.id)
        response.delete_cookie(settings.session_cookie)
    return response

@app.exception_handler(FormError)
async def form_error_handler(request: Request, exc: FormError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "errors": exc.errors})

@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

@app.exception_handler(FizzpanError)
async def fizzpan_error_handler(request: Request, exc: FizzpanError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# ---------------------------
# Route guards
# ---------------------------
async def app_session(request: Request) -> AppSession:
    s: AppSession = request.state.app_session
    await s.ensure_ready()
    return s

async def require_user(s: AppSession = Depends(app_session)) -> AppSession:
    if s.auth.user is None:
        raise RedirectRequired("/login")
    return s

async def require_admin(s: AppSession = Depends(require_user)) -> AppSession:
    if s.auth.user.role != Role.ADMIN:
        raise RedirectRequired(s.auth.user.home)
    return s

async def signed_out(s: AppSession = Depends(app_session)) -> AppSession:
    if s.auth.user is not None:
        raise RedirectRequired(s.auth.user.home)
    return s

# ---------------------------
# Public pages
# ---------------------------
@app.get("/")
async def landing(s: AppSession = Depends(app_session)):
    return await views.landing_logic(s)

@app.get("/login")
async def login_page(s: AppSession = Depends(signed_out)):
    return await views.login_page_logic(s)

@app.post("/login")
async def login(payload: LoginIn, s: AppSession = Depends(signed_out)):
    return await views.login_logic(s, payload)

@app.get("/register")
async def register_page(s: AppSession = Depends(signed_out)):
    return await views.register_page_logic(s)

@app.post("/register", status_code=201)
async def register(payload: RegisterIn, s: AppSession = Depends(signed_out)):
    return await views.register_logic(s, payload)

@app.post("/logout")
async def logout(response: Response, s: AppSession = Depends(app_session)):
    result = await views.logout_logic(s)
    registry.drop(s.id)
    response.delete_cookie(settings.session_cookie)
    return result

# ---------------------------
# Customer pages
# ---------------------------
@app.get("/user")
async def user_home(category: Optional[str] = None, s: AppSession = Depends(require_user)):
    return await views.user_home_logic(s, category)

@app.get("/user/products")
async def user_products(category: Optional[str] = None, s: AppSession = Depends(require_user)):
    return await views.user_products_logic(s, category)

@app.get("/user/orders")
async def user_orders(status: Optional[OrderStatus] = None, s: AppSession = Depends(require_user)):
    return await views.user_orders_logic(s, status)

@app.get("/user/cart")
async def user_cart(s: AppSession = Depends(require_user)):
    return await views.user_cart_logic(s)

@app.post("/user/cart")
async def cart_add(payload: AddToCartIn, s: AppSession = Depends(require_user)):
    return await views.cart_add_logic(s, payload)

@app.put("/user/cart/{cart_id}")
async def cart_update(cart_id: str, payload: UpdateCartItemIn, s: AppSession = Depends(require_user)):
    return await views.cart_update_logic(s, cart_id, payload.quantity)

@app.delete("/user/cart/{cart_id}")
async def cart_remove(cart_id: str, s: AppSession = Depends(require_user)):
    return await views.cart_remove_logic(s, cart_id)

@app.delete("/user/cart")
async def cart_clear(s: AppSession = Depends(require_user)):
    return await views.cart_clear_logic(s)

@app.get("/user/account")
async def account(s: AppSession = Depends(require_user)):
    return await views.account_logic(s)

@app.put("/user/account")
async def account_update(payload: ProfileUpdate, s: AppSession = Depends(require_user)):
    return await views.account_update_logic(s, payload, settings)

@app.get("/user/checkout")
async def checkout_page(s: AppSession = Depends(require_user)):
    return await views.checkout_page_logic(s)

@app.post("/user/checkout", status_code=201)
async def checkout(payload: CheckoutIn, idempotency_key: Optional[str] = Header(None),
                   s: AppSession = Depends(require_user)):
    return await views.checkout_logic(s, payload, idempotency_key)

# ---------------------------
# Admin dashboard
# ---------------------------
@app.get("/admin")
async def admin_home(s: AppSession = Depends(require_admin)):
    return await views.admin_home_logic(s)

@app.get("/admin/revenue")
async def revenue(s: AppSession = Depends(require_admin)):
    return await views.revenue_logic(s)

@app.get("/admin/add-user")
async def add_user_page(s: AppSession = Depends(require_admin)):
    return {"page": "add-user", "roles": [r.value for r in Role]}

@app.post("/admin/add-user", status_code=201)
async def add_user(payload: ProfileIn, s: AppSession = Depends(require_admin)):
    return await views.add_user_logic(s, payload, settings)

@app.get("/admin/edit-user/{profile_id}")
async def edit_user_page(profile_id: str, s: AppSession = Depends(require_admin)):
    return await views.edit_user_page_logic(s, profile_id)

@app.put("/admin/edit-user/{profile_id}")
async def edit_user(profile_id: str, payload: ProfileUpdate, s: AppSession = Depends(require_admin)):
    return await views.edit_user_logic(s, profile_id, payload, settings, registry)

@app.get("/admin/add-food")
async def add_food_page(s: AppSession = Depends(require_admin)):
    return await views.add_food_page_logic(s, settings)

@app.post("/admin/add-food", status_code=201)
async def add_food(payload: ProductIn, s: AppSession = Depends(require_admin)):
    return await views.add_food_logic(s, payload, settings)

@app.get("/admin/edit-food/{product_id}")
async def edit_food_page(product_id: str, s: AppSession = Depends(require_admin)):
    return await views.edit_food_page_logic(s, product_id)

@app.put("/admin/edit-food/{product_id}")
async def edit_food(product_id: str, payload: ProductUpdate, s: AppSession = Depends(require_admin)):
    return await views.edit_food_logic(s, product_id, payload, settings)

@app.get("/admin/orders/{order_id}")
async def order_detail(order_id: str, s: AppSession = Depends(require_admin)):
    return await views.order_detail_logic(s, order_id)

@app.put("/admin/orders/{order_id}/status")
async def order_status(order_id: str, payload: StatusUpdateIn, s: AppSession = Depends(require_admin)):
    return await views.order_status_logic(s, order_id, payload)

@app.get("/admin/add-table")
async def add_table_page(s: AppSession = Depends(require_admin)):
    return {"page": "add-table", "fields": ["name", "capacity"]}

@app.post("/admin/add-table", status_code=201)
async def add_table(payload: TableIn, s: AppSession = Depends(require_admin)):
    return await views.add_table_logic(s, payload)

@app.post("/admin/table-list/{table_id}/assign")
async def assign_users(table_id: str, payload: AssignUsersIn, s: AppSession = Depends(require_admin)):
    return await views.assign_users_logic(s, table_id, payload)

# list screens share one pair of routes; registered last so the fixed paths above win
@app.get("/admin/{screen}")
async def admin_list(screen: str, page: Optional[int] = None, rows_per_page: Optional[int] = None,
                     s: AppSession = Depends(require_admin)):
    if screen not in views.LIST_SCREENS:
        raise HTTPException(status_code=404, detail="page not found")
    return await views.admin_list_logic(s, screen, page, rows_per_page)

@app.delete("/admin/{screen}/{row_id}")
async def admin_delete(screen: str, row_id: str, s: AppSession = Depends(require_admin)):
    if screen not in views.LIST_SCREENS:
        raise HTTPException(status_code=404, detail="page not found")
    return await views.admin_delete_logic(s, screen, row_id)

# ---------------------------
# Utility: reset (for tests/demo)
# ---------------------------
@app.post("/reset")
async def reset_all():
    if settings.backend_mode != "memory":
        raise HTTPException(status_code=404, detail="reset is only available with the memory backend")
    transport.reset()
    transport.seed(settings.seed_admin_email, settings.seed_admin_password, settings.seed_admin_username)
    registry.clear()
    views.IDEMPOTENCY.clear()
    return {"status": "reset"}


if __name__ == "__main__":
    uvicorn.run("fizzpan.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
