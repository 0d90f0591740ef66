# fizzpan/legacy.py
import logging
from typing import Any, Dict, List, Optional

import requests

from .auth import PROFILE_KEY, TOKEN_KEY, USER_KEY
from .errors import BackendError, SessionExpired
from .storage import LocalStorage

logger = logging.getLogger(__name__)


class LegacyApiClient:
    """The older REST backend still behind the table screens and a few admin forms."""

    def __init__(self, base_url: str, storage: LocalStorage, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.storage = storage
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = {}
        token = self.storage.get_item(TOKEN_KEY)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            r = self.session.request(method, f"{self.base_url}{path}", headers=headers,
                                     timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Legacy API unreachable: {e}", status_code=502) from e

        if r.status_code == 401:
            # stale bearer: drop everything the legacy API handed out
            logger.warning("Legacy API rejected the token on %s %s", method, path)
            for key in (TOKEN_KEY, USER_KEY, PROFILE_KEY):
                self.storage.remove_item(key)
            raise SessionExpired()
        if r.status_code == 413:
            raise BackendError("Image too large", status_code=413, code="payload_too_large")
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = r.text or None
            raise BackendError.from_payload(payload, r.status_code)

        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError:
            return r.text

    # Products
    def create_product(self, product: Dict[str, Any]) -> Any:
        return self._request("POST", "/api/produk", json=product)

    # Profiles
    def create_profile(self, profile: Dict[str, Any]) -> Any:
        return self._request("POST", "/api/profile", json=profile)

    def get_profile(self, profile_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/profile/{profile_id}")

    def update_profile(self, profile_id: str, updates: Dict[str, Any]) -> Any:
        return self._request("PUT", f"/api/profile/{profile_id}", json=updates)

    # Orders
    def list_orders(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/orders") or []

    def delete_order(self, order_id: Any) -> Any:
        return self._request("DELETE", f"/api/orders/{order_id}")

    def update_order_status(self, order_id: Any, status: str) -> Any:
        return self._request("PUT", f"/api/order/update-status/{order_id}", json={"id": order_id, "status": status})

    # Restaurant tables
    def list_tables(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/tables") or []

    def create_table(self, table: Dict[str, Any]) -> Any:
        return self._request("POST", "/api/tables", json=table)

    def assign_users_to_table(self, table_id: Any, user_ids: List[str]) -> Any:
        payload = [{"userId": user_id, "tableId": table_id} for user_id in user_ids]
        return self._request("POST", "/api/user-table/create-range", json=payload)
