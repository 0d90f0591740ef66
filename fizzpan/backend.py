import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .config import Settings
from .database import MemoryDatabase
from .errors import AuthError, SessionExpired
from .models import AuthUser, Session
from .postgrest import RestTransport
from .query import Query, QueryResult, TableQuery
from .storage import LocalStorage

logger = logging.getLogger(__name__)

# Auth events, as emitted by the hosted auth service's client
INITIAL_SESSION = "INITIAL_SESSION"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

AuthListener = Callable[[str, Optional[Session]], Awaitable[None]]

# refresh a little before the access token actually expires
EXPIRY_MARGIN = 10


class Subscription:
    def __init__(self, listeners: List[AuthListener], callback: AuthListener):
        self._listeners = listeners
        self.callback = callback

    def unsubscribe(self):
        if self.callback in self._listeners:
            self._listeners.remove(self.callback)


class AuthClient:
    """Client half of the backend auth: keeps the session in local storage and emits auth events."""

    def __init__(self, transport: Any, storage: LocalStorage, storage_key: str,
                 clock: Callable[[], float] = time.time):
        self.transport = transport
        self.storage = storage
        self.storage_key = storage_key
        self.clock = clock
        self._listeners: List[AuthListener] = []

    # ---------------------------
    # Persisted session
    # ---------------------------
    def stored_session(self) -> Optional[Session]:
        raw = self.storage.get_json(self.storage_key)
        if not raw:
            return None
        try:
            return Session.model_validate(raw)
        except ValueError:
            logger.warning("Discarding unreadable stored session")
            self.storage.remove_item(self.storage_key)
            return None

    def _save(self, session: Session):
        self.storage.set_json(self.storage_key, session.model_dump())

    def _clear(self):
        self.storage.remove_item(self.storage_key)

    def _session_from(self, payload: Dict[str, Any]) -> Session:
        if payload.get("expires_at") is None and payload.get("expires_in") is not None:
            payload = dict(payload, expires_at=int(self.clock()) + int(payload["expires_in"]))
        return Session.model_validate(payload)

    def _expired(self, session: Session) -> bool:
        return session.expires_at is not None and session.expires_at <= self.clock() + EXPIRY_MARGIN

    # ---------------------------
    # Events
    # ---------------------------
    def on_auth_state_change(self, callback: AuthListener) -> Subscription:
        self._listeners.append(callback)
        return Subscription(self._listeners, callback)

    async def _emit(self, event: str, session: Optional[Session]):
        logger.debug("Auth event: %s", event)
        for listener in list(self._listeners):
            await listener(event, session)

    # ---------------------------
    # Auth calls
    # ---------------------------
    async def sign_up(self, email: str, password: str,
                      data: Optional[Dict[str, Any]] = None) -> Tuple[Optional[AuthUser], Optional[Session]]:
        payload = await self.transport.auth("signup", {"email": email, "password": password, "data": data or {}})
        if not payload:
            raise AuthError("Sign up failed")
        if "access_token" not in payload:
            # email confirmation pending: the service returns the bare user
            return AuthUser.model_validate(payload), None
        session = self._session_from(payload)
        self._save(session)
        await self._emit(SIGNED_IN, session)
        return session.user, session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        payload = await self.transport.auth("password", {"email": email, "password": password})
        session = self._session_from(payload)
        self._save(session)
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_out(self):
        session = self.stored_session()
        try:
            if session is not None:
                await self.transport.auth("logout", access_token=session.access_token)
        except SessionExpired:
            pass
        finally:
            self._clear()
        await self._emit(SIGNED_OUT, None)

    async def refresh_session(self) -> Optional[Session]:
        session = self.stored_session()
        if session is None or not session.refresh_token:
            return None
        try:
            payload = await self.transport.auth("refresh", {"refresh_token": session.refresh_token})
        except AuthError as e:
            logger.warning("Session refresh failed: %s", e.message)
            self._clear()
            await self._emit(SIGNED_OUT, None)
            return None
        fresh = self._session_from(payload)
        self._save(fresh)
        await self._emit(TOKEN_REFRESHED, fresh)
        return fresh

    async def get_session(self) -> Optional[Session]:
        session = self.stored_session()
        if session is not None and self._expired(session):
            return await self.refresh_session()
        return session

    async def get_user(self) -> Optional[AuthUser]:
        session = await self.get_session()
        if session is None:
            return None
        payload = await self.transport.auth("user", access_token=session.access_token)
        return AuthUser.model_validate(payload)

    async def forget(self):
        """Drop the local session without calling the backend (used after a 401)."""
        if self.stored_session() is not None:
            self._clear()
            await self._emit(SIGNED_OUT, None)


class BackendClient:
    """Per-session handle on the backend-as-a-service: `table()` queries plus `auth`."""

    def __init__(self, transport: Any, storage: LocalStorage, storage_key: str,
                 clock: Callable[[], float] = time.time):
        self.transport = transport
        self.storage = storage
        self.auth = AuthClient(transport, storage, storage_key, clock=clock)

    def table(self, name: str) -> TableQuery:
        return TableQuery(name, self._run)

    async def _run(self, query: Query) -> QueryResult:
        session = await self.auth.get_session()
        return await self.transport.execute(query, session.access_token if session else None)


def create_transport(settings: Settings) -> Any:
    if settings.backend_mode == "memory":
        database = MemoryDatabase(access_token_ttl=settings.access_token_ttl)
        database.seed(settings.seed_admin_email, settings.seed_admin_password, settings.seed_admin_username)
        return database
    if settings.backend_mode == "rest":
        if not settings.backend_key:
            logger.warning("FIZZPAN_BACKEND_KEY is empty; the hosted backend will reject requests")
        return RestTransport(settings.backend_url, settings.backend_key, timeout=settings.backend_timeout)
    raise ValueError(f"unknown backend mode {settings.backend_mode!r}")
