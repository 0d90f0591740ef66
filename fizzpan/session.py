import logging
import secrets
from typing import Any, Dict, Optional

from .admin import ListView
from .auth import AuthStore
from .backend import BackendClient
from .cart import CartStore
from .config import Settings
from .legacy import LegacyApiClient
from .storage import LocalStorage

logger = logging.getLogger(__name__)


class AppSession:
    """Server-side stand-in for one browser: its local storage and the stores built on it."""

    def __init__(self, session_id: str, transport: Any, settings: Settings):
        self.id = session_id
        self.storage = LocalStorage()
        self.storage_key = settings.session_storage_key
        self.backend = BackendClient(transport, self.storage, settings.session_storage_key)
        self.auth = AuthStore(self.backend, self.storage, role_lookup_timeout=settings.role_lookup_timeout)
        self.cart = CartStore(self.backend, self.auth)
        self.legacy: Optional[LegacyApiClient] = None
        if settings.legacy_api_url:
            self.legacy = LegacyApiClient(settings.legacy_api_url, self.storage, timeout=settings.legacy_timeout)
        self.rows_per_page = settings.rows_per_page
        self.views: Dict[str, ListView] = {}
        self.ready = False

    @property
    def has_state(self) -> bool:
        return self.auth.user is not None or self.storage.get_item(self.storage_key) is not None

    async def ensure_ready(self):
        if self.ready:
            return
        await self.auth.init()
        await self.cart.refresh()
        self.ready = True

    def view(self, name: str) -> ListView:
        if name not in self.views:
            self.views[name] = ListView(rows_per_page=self.rows_per_page)
        return self.views[name]

    async def expire(self):
        """The backend rejected our token: forget the session and everything cached with it."""
        await self.backend.auth.forget()
        self.storage.clear()
        self.auth.user = None
        self.cart.reset()
        self.views.clear()

    def close(self):
        self.auth.close()


class SessionRegistry:
    def __init__(self, transport: Any, settings: Settings):
        self.transport = transport
        self.settings = settings
        self._sessions: Dict[str, AppSession] = {}

    def get(self, session_id: Optional[str]) -> Optional[AppSession]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def create(self) -> AppSession:
        # not kept until register(); anonymous requests leave nothing behind
        return AppSession(secrets.token_urlsafe(24), self.transport, self.settings)

    def register(self, app_session: AppSession):
        self._sessions[app_session.id] = app_session
        logger.debug("Opened app session %s", app_session.id[:8])

    def drop(self, session_id: str):
        app_session = self._sessions.pop(session_id, None)
        if app_session is not None:
            app_session.close()
            logger.debug("Closed app session %s", session_id[:8])

    def forget_cached_role(self, user_id: str):
        """An admin changed `user_id`: every browser of that user resolves its role again."""
        for app_session in self._sessions.values():
            if app_session.auth.forget_cached_role(user_id):
                app_session.ready = False

    def clear(self):
        for app_session in self._sessions.values():
            app_session.close()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
