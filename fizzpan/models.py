# fizzpan/models.py
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

RowId = Union[int, str]


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ContactMethod(str, Enum):
    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user: AuthUser


class AppUser(AuthUser):
    """The signed-in user with the role and username resolved for routing."""

    role: Role = Role.USER
    username: str = ""

    @property
    def home(self) -> str:
        return "/admin" if self.role == Role.ADMIN else "/user"


class CartProduct(BaseModel):
    id: RowId
    name: str
    price: float
    image: Optional[str] = None
    description: Optional[str] = None


class CartItem(BaseModel):
    id: RowId
    quantity: int
    product: Optional[CartProduct] = None

    @property
    def line_total(self) -> float:
        if self.product is None:
            return 0.0
        return self.product.price * self.quantity


class OrderLine(BaseModel):
    product_id: RowId
    quantity: int
    price: float
