import asyncio
import logging
from typing import Optional

from . import services
from .backend import INITIAL_SESSION, BackendClient
from .errors import BackendError, SessionExpired
from .models import AppUser, AuthUser, Role, Session
from .storage import LocalStorage

logger = logging.getLogger(__name__)

# keys shared with the legacy REST client
TOKEN_KEY = "token"
USER_KEY = "user"
PROFILE_KEY = "profile"


def _role(value: Optional[str]) -> Role:
    try:
        return Role(value)
    except ValueError:
        return Role.USER


class AuthStore:
    """The signed-in user of one app session, re-derived from the backend on load and on auth events."""

    def __init__(self, client: BackendClient, storage: LocalStorage, role_lookup_timeout: float = 5.0):
        self.client = client
        self.storage = storage
        self.role_lookup_timeout = role_lookup_timeout
        self.user: Optional[AppUser] = None
        self.loading = True
        self.closed = False
        self._subscription = client.auth.on_auth_state_change(self._on_auth_event)

    async def init(self) -> Optional[AppUser]:
        try:
            session = await self.client.auth.get_session()
            self.user = await self.resolve_user(session.user) if session else None
        finally:
            self.loading = False
        return self.user

    def close(self):
        self.closed = True
        self._subscription.unsubscribe()

    # ---------------------------
    # Role resolution
    # ---------------------------
    async def resolve_user(self, auth_user: AuthUser) -> AppUser:
        metadata = auth_user.user_metadata or {}
        username = metadata.get("username") or (auth_user.email or "").split("@")[0]

        if metadata.get("role"):
            logger.debug("Role for %s taken from user metadata", auth_user.id)
            return self._app_user(auth_user, metadata["role"], username)

        cached_role = self.storage.get_item(f"user_role_{auth_user.id}")
        if cached_role:
            logger.debug("Role for %s taken from local cache", auth_user.id)
            cached_username = self.storage.get_item(f"user_username_{auth_user.id}")
            return self._app_user(auth_user, cached_role, cached_username or username)

        profile = await self._lookup_profile(auth_user.id)
        if profile and profile.get("role"):
            profile_username = profile.get("username") or username
            self.storage.set_item(f"user_role_{auth_user.id}", profile["role"])
            self.storage.set_item(f"user_username_{auth_user.id}", profile_username)
            logger.debug("Role for %s taken from profile", auth_user.id)
            return self._app_user(auth_user, profile["role"], profile_username)

        logger.info("No role found for %s, defaulting to 'user'", auth_user.id)
        return self._app_user(auth_user, Role.USER, username)

    def forget_cached_role(self, user_id: str) -> bool:
        """Drops the cached role/username of `user_id`. True when that is the signed-in user."""
        self.storage.remove_item(f"user_role_{user_id}")
        self.storage.remove_item(f"user_username_{user_id}")
        return self.user is not None and self.user.id == user_id

    async def _lookup_profile(self, user_id: str) -> Optional[dict]:
        try:
            return await asyncio.wait_for(
                services.get_profile_role(self.client, user_id), timeout=self.role_lookup_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Profile lookup for %s timed out after %.1fs", user_id, self.role_lookup_timeout)
        except SessionExpired:
            raise
        except BackendError as e:
            logger.warning("Profile lookup for %s failed: %s", user_id, e.message)
        return None

    def _app_user(self, auth_user: AuthUser, role, username: str) -> AppUser:
        return AppUser(
            id=auth_user.id,
            email=auth_user.email,
            user_metadata=auth_user.user_metadata,
            created_at=auth_user.created_at,
            role=_role(role),
            username=username,
        )

    async def current_user(self) -> Optional[AppUser]:
        session = await self.client.auth.get_session()
        if session is None:
            return None
        return await self.resolve_user(session.user)

    # ---------------------------
    # Auth events
    # ---------------------------
    async def _on_auth_event(self, event: str, session: Optional[Session]):
        if self.closed or event == INITIAL_SESSION:
            return
        if session is None:
            self.user = None
            return
        self.storage.set_item(TOKEN_KEY, session.access_token)
        self.user = await self.resolve_user(session.user)

    # ---------------------------
    # Sign up / in / out
    # ---------------------------
    async def sign_up(self, email: str, password: str, username: str) -> Optional[AuthUser]:
        user, session = await self.client.auth.sign_up(
            email, password, {"username": username, "role": Role.USER.value}
        )
        if user is not None:
            try:
                await services.create_profile(
                    self.client, {"id": user.id, "username": username, "role": Role.USER.value}
                )
            except BackendError as e:
                logger.error("Error creating profile for %s: %s", user.id, e.message)
        if session is None:
            logger.info("Sign up for %s is waiting for email confirmation", email)
        return user

    async def sign_in(self, email: str, password: str) -> AppUser:
        await self.client.auth.sign_in_with_password(email, password)
        # the SIGNED_IN handler has already resolved the user
        if self.user is not None:
            self.storage.set_item(USER_KEY, self.user.model_dump_json())
        return self.user

    async def sign_out(self):
        try:
            await self.client.auth.sign_out()
        finally:
            for key in (TOKEN_KEY, USER_KEY, PROFILE_KEY):
                self.storage.remove_item(key)
            self.user = None
