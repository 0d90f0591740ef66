# fizzpan/core.py
import json
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import FormError
from .models import ContactMethod, OrderStatus, Role, RowId

EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
DATA_URL_RE = re.compile(r"^data:image/[\w.+-]+;base64,(?P<data>.*)$", re.DOTALL)

# ---------------------------
# Pydantic schemas
# ---------------------------
class LoginIn(BaseModel):
    email: str = ""
    password: str = ""

class RegisterIn(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""

class AddToCartIn(BaseModel):
    product_id: RowId
    quantity: int = 1

class UpdateCartItemIn(BaseModel):
    quantity: int

class CheckoutIn(BaseModel):
    contact_method: ContactMethod = ContactMethod.WHATSAPP
    contact_info: str = ""
    notes: Optional[str] = None

class ProductIn(BaseModel):
    name: str = ""
    description: str = ""
    price: Optional[float] = None
    stock: Optional[int] = None
    image: str = ""
    category: Optional[str] = None

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None
    image: Optional[str] = None
    category: Optional[str] = None

class ProfileIn(BaseModel):
    username: str = ""
    role: Role = Role.USER
    avatar_url: str = ""
    email: Optional[str] = None

class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    role: Optional[Role] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None

class StatusUpdateIn(BaseModel):
    status: OrderStatus

class TableIn(BaseModel):
    name: str = ""
    capacity: int = 4

class AssignUsersIn(BaseModel):
    user_ids: List[str] = Field(default_factory=list)


# ---------------------------
# Form validation
# ---------------------------
def _raise_if(errors: Dict[str, str]):
    if errors:
        raise FormError(errors)

def validate_login(payload: LoginIn):
    errors = {}
    if not payload.email:
        errors["email"] = "Email is required"
    elif not EMAIL_RE.search(payload.email):
        errors["email"] = "Email is invalid"
    if not payload.password:
        errors["password"] = "Password is required"
    _raise_if(errors)

def validate_register(payload: RegisterIn):
    errors = {}
    if not payload.username.strip():
        errors["username"] = "Username is required"
    if not payload.email:
        errors["email"] = "Email is required"
    elif not EMAIL_RE.search(payload.email):
        errors["email"] = "Email is invalid"
    if not payload.password:
        errors["password"] = "Password is required"
    elif len(payload.password) < 6:
        errors["password"] = "Password must be at least 6 characters"
    if payload.password != payload.confirm_password:
        errors["confirm_password"] = "Passwords do not match"
    _raise_if(errors)

def validate_quantity(quantity: int):
    if quantity < 1:
        raise FormError({"quantity": "Quantity must be at least 1"})

def image_bytes(image: Optional[str]) -> int:
    """Decoded size of an inline data-URL image; plain URLs count as 0."""
    if not image:
        return 0
    match = DATA_URL_RE.match(image)
    if not match:
        return 0
    data = match.group("data").strip()
    return len(data) * 3 // 4 - data[-2:].count("=")

def check_image_limits(values: Dict[str, Any], max_image_bytes: int, max_payload_bytes: int):
    if image_bytes(values.get("image") or values.get("avatar_url")) > max_image_bytes:
        raise FormError(
            {"image": f"Image must be smaller than {max_image_bytes // (1024 * 1024)}MB"},
            message="Image too large",
        )
    if len(json.dumps(values).encode("utf-8")) > max_payload_bytes:
        raise FormError(
            {"image": "Please select a smaller image or reduce quality"},
            message="Image too large",
        )

def validate_product(payload: ProductIn):
    errors = {}
    if not payload.name.strip():
        errors["name"] = "Product name is required"
    elif len(payload.name.strip()) < 3:
        errors["name"] = "Product name must be at least 3 characters"
    if not payload.description.strip():
        errors["description"] = "Description is required"
    elif len(payload.description.strip()) < 10:
        errors["description"] = "Description must be at least 10 characters"
    if payload.price is None:
        errors["price"] = "Price is required"
    elif payload.price < 0:
        errors["price"] = "Price must be positive"
    if payload.stock is None:
        errors["stock"] = "Stock is required"
    elif payload.stock < 0:
        errors["stock"] = "Stock must be positive"
    _raise_if(errors)

def validate_product_update(payload: ProductUpdate):
    errors = {}
    if payload.name is not None and len(payload.name.strip()) < 3:
        errors["name"] = "Product name must be at least 3 characters"
    if payload.price is not None and payload.price < 0:
        errors["price"] = "Price must be positive"
    if payload.stock is not None and payload.stock < 0:
        errors["stock"] = "Stock must be positive"
    _raise_if(errors)

def validate_profile(payload: ProfileIn):
    if not payload.username.strip():
        raise FormError({"username": "Username is required"})

def validate_table(payload: TableIn):
    errors = {}
    if not payload.name.strip():
        errors["name"] = "Table name is required"
    if payload.capacity < 1:
        errors["capacity"] = "Capacity must be at least 1"
    _raise_if(errors)

def clean_values(payload: BaseModel) -> Dict[str, Any]:
    return {k: v for k, v in payload.model_dump(mode="json").items() if v is not None}
