import logging
from typing import Any, Dict, List, Optional

from . import services
from .auth import AuthStore
from .backend import BackendClient
from .errors import BackendError, EmptyCartError, FormError
from .models import CartItem, ContactMethod, OrderLine, RowId

logger = logging.getLogger(__name__)


class CartStore:
    """Cart rows of the signed-in user joined with their products.

    Every mutation is followed by a refetch; there is no local reconciliation.
    """

    def __init__(self, client: BackendClient, auth: AuthStore):
        self.client = client
        self.auth = auth
        self.items: List[CartItem] = []
        self.loading = False

    @property
    def user_id(self) -> Optional[str]:
        return self.auth.user.id if self.auth.user else None

    @property
    def total(self) -> float:
        return sum(item.line_total for item in self.items)

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self.items)

    def reset(self):
        self.items = []

    async def refresh(self) -> List[CartItem]:
        if not self.user_id:
            return self.items
        self.loading = True
        try:
            rows = await services.get_cart(self.client, self.user_id)
            self.items = [CartItem.model_validate(row) for row in rows]
        except BackendError as e:
            logger.error("Error fetching cart: %s", e.message)
            if e.status_code == 401:
                raise
        finally:
            self.loading = False
        return self.items

    async def add(self, product_id: RowId, quantity: int = 1) -> Optional[Dict[str, Any]]:
        if not self.user_id:
            # guests have no server-side cart
            return None
        try:
            row = await services.add_to_cart(self.client, self.user_id, product_id, quantity)
        except BackendError as e:
            logger.error("Error adding to cart: %s", e.message)
            raise
        await self.refresh()
        return row

    async def update(self, cart_id: RowId, quantity: int) -> Dict[str, Any]:
        try:
            row = await services.update_cart_item(self.client, cart_id, {"quantity": quantity})
        except BackendError as e:
            logger.error("Error updating cart item: %s", e.message)
            raise
        await self.refresh()
        return row

    async def remove(self, cart_id: RowId):
        try:
            await services.remove_from_cart(self.client, cart_id)
        except BackendError as e:
            logger.error("Error removing from cart: %s", e.message)
            raise
        await self.refresh()

    async def clear(self):
        if not self.user_id:
            return
        try:
            await services.clear_cart(self.client, self.user_id)
        except BackendError as e:
            logger.error("Error clearing cart: %s", e.message)
            raise
        await self.refresh()

    # ---------------------------
    # Checkout
    # ---------------------------
    async def checkout(self, contact_method: ContactMethod, contact_info: str,
                       notes: Optional[str] = None) -> Dict[str, Any]:
        if not self.items:
            raise EmptyCartError()
        if not (contact_info or "").strip():
            raise FormError({"contact_info": "Please provide your contact information"},
                            message="Please provide your contact information")

        # rows whose product was deleted since they were added
        unavailable = [item.id for item in self.items if item.product is None]
        if unavailable:
            raise FormError(
                {"cart": "Some items are no longer available: " + ", ".join(str(i) for i in unavailable)},
                message="Remove unavailable items before checking out",
            )

        lines = [
            OrderLine(product_id=item.product.id, quantity=item.quantity, price=item.product.price)
            for item in self.items
        ]
        try:
            order = await services.create_order(
                self.client,
                user_id=self.user_id,
                items=lines,
                total=self.total,
                contact_method=ContactMethod(contact_method).value,
                contact_info=contact_info.strip(),
                notes=notes or None,
            )
        except BackendError as e:
            logger.error("Error placing order: %s", e.message)
            raise
        await self.clear()
        logger.info("Order %s placed by %s for %s", order["id"], self.user_id, order["total_amount"])
        return order
