# tests/test_auth.py
import asyncio

import pytest
from fastapi.testclient import TestClient

from fizzpan.auth import AuthStore
from fizzpan.backend import BackendClient
from fizzpan.errors import AuthError
from fizzpan.main import app, registry, transport
from fizzpan.models import Role
from fizzpan.query import Query
from fizzpan.storage import LocalStorage

from conftest import Passthrough

STORAGE_KEY = "fizzpan-auth-token"


class SlowProfiles(Passthrough):
    def __init__(self, inner, delay):
        super().__init__(inner)
        self.delay = delay

    async def execute(self, query, access_token=None):
        if query.table == "profiles" and query.action == "select":
            await asyncio.sleep(self.delay)
        return await super().execute(query, access_token)


def _bare_user(db, email, profile_role=None):
    """An auth user without role metadata, optionally with a profile row."""
    session = asyncio.run(db.auth("signup", {"email": email, "password": "secret123", "data": {}}))
    user_id = session["user"]["id"]
    if profile_role:
        asyncio.run(db.execute(Query(table="profiles", action="insert",
                                     values=[{"id": user_id, "username": "cook", "role": profile_role}])))
    return user_id


def _store(transport_, timeout=5.0):
    storage = LocalStorage()
    client = BackendClient(transport_, storage, STORAGE_KEY)
    return AuthStore(client, storage, role_lookup_timeout=timeout), storage


def test_role_from_metadata(db):
    store, _ = _store(db)
    user = asyncio.run(store.sign_in("admin@fizzpan.local", "admin123"))
    assert user.role == Role.ADMIN
    assert user.username == "admin"
    assert user.home == "/admin"


def test_role_from_profile_is_cached(db):
    user_id = _bare_user(db, "cook@example.com", profile_role="admin")
    store, storage = _store(db)
    user = asyncio.run(store.sign_in("cook@example.com", "secret123"))
    assert user.role == Role.ADMIN
    assert storage.get_item(f"user_role_{user_id}") == "admin"
    assert storage.get_item(f"user_username_{user_id}") == "cook"

    # later resolutions use the cache even if the profile is gone
    db.tables["profiles"].pop(user_id)
    assert asyncio.run(store.current_user()).role == Role.ADMIN


def test_role_falls_back_to_user_without_profile(db):
    _bare_user(db, "ghost@example.com")
    store, _ = _store(db)
    user = asyncio.run(store.sign_in("ghost@example.com", "secret123"))
    assert user.role == Role.USER
    # username falls back to the email local part
    assert user.username == "ghost"


def test_role_falls_back_to_user_when_profile_lookup_times_out(db):
    user_id = _bare_user(db, "slow@example.com", profile_role="admin")
    store, storage = _store(SlowProfiles(db, delay=0.5), timeout=0.05)
    user = asyncio.run(store.sign_in("slow@example.com", "secret123"))
    assert user.role == Role.USER
    assert storage.get_item(f"user_role_{user_id}") is None


def test_sign_in_stores_legacy_token(db):
    store, storage = _store(db)
    asyncio.run(store.sign_in("admin@fizzpan.local", "admin123"))
    assert storage.get_item("token") == store.client.auth.stored_session().access_token


def test_sign_out_clears_user_and_tokens(db):
    store, storage = _store(db)
    asyncio.run(store.sign_in("admin@fizzpan.local", "admin123"))
    asyncio.run(store.sign_out())
    assert store.user is None
    assert storage.get_item("token") is None
    assert storage.get_item(STORAGE_KEY) is None
    assert db.access_tokens == {}


def test_init_restores_persisted_session(db):
    store, storage = _store(db)
    asyncio.run(store.sign_in("admin@fizzpan.local", "admin123"))

    # a second store over the same local storage, like a page reload
    reloaded = AuthStore(BackendClient(db, storage, STORAGE_KEY), storage)
    user = asyncio.run(reloaded.init())
    assert user.role == Role.ADMIN
    assert reloaded.loading is False


def test_expired_access_token_is_refreshed(db):
    now = [1000.0]
    db.clock = lambda: now[0]
    storage = LocalStorage()
    client = BackendClient(db, storage, STORAGE_KEY, clock=lambda: now[0])
    store = AuthStore(client, storage)
    asyncio.run(store.sign_in("admin@fizzpan.local", "admin123"))
    first = storage.get_item("token")

    now[0] += db.access_token_ttl + 1
    user = asyncio.run(store.current_user())
    assert user.role == Role.ADMIN
    assert storage.get_item("token") != first


def test_closed_store_ignores_late_events(db):
    store, _ = _store(db)
    store.close()
    asyncio.run(store.client.auth.sign_in_with_password("admin@fizzpan.local", "admin123"))
    assert store.user is None


def test_sign_up_profile_failure_is_logged_not_raised(db, monkeypatch, caplog):
    store, _ = _store(db)
    original = db.execute

    async def no_profiles(query, access_token=None):
        if query.table == "profiles" and query.action == "insert":
            raise AuthError("new row violates row-level security policy", status_code=403)
        return await original(query, access_token)

    monkeypatch.setattr(db, "execute", no_profiles)
    user = asyncio.run(store.sign_up("new@example.com", "secret123", "newbie"))
    assert user is not None
    assert store.user.username == "newbie"
    assert "Error creating profile" in caplog.text


def test_wrong_password_is_rejected(db):
    store, _ = _store(db)
    with pytest.raises(AuthError) as exc:
        asyncio.run(store.sign_in("admin@fizzpan.local", "nope"))
    assert exc.value.message == "Invalid login credentials"


# ---------------------------
# Route level
# ---------------------------
client = TestClient(app)


def reset():
    client.post("/reset")
    client.cookies.clear()


def test_login_validation_messages():
    reset()
    r = client.post("/login", json={"email": "not-an-email", "password": ""})
    assert r.status_code == 400
    assert r.json()["errors"] == {"email": "Email is invalid", "password": "Password is required"}


def test_register_validation_messages():
    reset()
    r = client.post("/register", json={"username": " ", "email": "", "password": "123",
                                       "confirm_password": "321"})
    assert r.status_code == 400
    assert r.json()["errors"] == {
        "username": "Username is required",
        "email": "Email is required",
        "password": "Password must be at least 6 characters",
        "confirm_password": "Passwords do not match",
    }


def test_login_with_bad_credentials_returns_detail():
    reset()
    r = client.post("/login", json={"email": "admin@fizzpan.local", "password": "wrong-one"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid login credentials"


def test_register_creates_profile_and_signs_in():
    reset()
    r = client.post("/register", json={"username": "gita", "email": "gita@example.com",
                                       "password": "secret123", "confirm_password": "secret123"})
    assert r.status_code == 201
    body = r.json()
    assert body["redirect"] == "/user"
    assert body["user"]["role"] == "user"
    assert transport.tables["profiles"][body["user"]["id"]]["username"] == "gita"


def test_protected_routes_redirect_to_login():
    reset()
    for path in ("/user", "/user/checkout", "/admin", "/admin/users"):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303, path
        assert r.headers["location"] == "/login"


def test_customer_is_sent_home_from_admin_routes():
    reset()
    client.post("/register", json={"username": "hana", "email": "hana@example.com",
                                   "password": "secret123", "confirm_password": "secret123"})
    r = client.get("/admin/revenue", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/user"


def test_signed_in_visit_to_login_goes_home():
    reset()
    client.post("/login", json={"email": "admin@fizzpan.local", "password": "admin123"})
    for path in ("/login", "/register"):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/admin"


def test_revoked_session_redirects_to_login_and_clears_state():
    reset()
    client.post("/register", json={"username": "ira", "email": "ira@example.com",
                                   "password": "secret123", "confirm_password": "secret123"})
    transport.access_tokens.clear()
    transport.refresh_tokens.clear()

    r = client.get("/user/orders", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    # the app session forgot the user
    r = client.get("/user", follow_redirects=False)
    assert r.headers["location"] == "/login"


def test_logout():
    reset()
    client.post("/login", json={"email": "admin@fizzpan.local", "password": "admin123"})
    assert client.post("/logout").json()["redirect"] == "/"
    assert client.get("/admin", follow_redirects=False).headers["location"] == "/login"


def test_revoked_session_is_dropped_from_registry():
    reset()
    client.post("/register", json={"username": "jaya", "email": "jaya@example.com",
                                   "password": "secret123", "confirm_password": "secret123"})
    assert len(registry) == 1
    transport.access_tokens.clear()
    transport.refresh_tokens.clear()

    assert client.get("/user/cart", follow_redirects=False).status_code == 303
    assert len(registry) == 0


def test_anonymous_visits_keep_no_session():
    reset()
    for _ in range(5):
        assert client.get("/").status_code == 200
        assert client.get("/admin", follow_redirects=False).status_code == 303
    assert len(registry) == 0
    assert "fizzpan_session" not in client.cookies

    client.post("/login", json={"email": "admin@fizzpan.local", "password": "admin123"})
    assert len(registry) == 1
    client.post("/logout")
    assert len(registry) == 0


def test_role_change_by_admin_reaches_the_users_session():
    reset()
    user_id = _bare_user(transport, "chef@example.com", profile_role="admin")
    chef = TestClient(app)
    r = chef.post("/login", json={"email": "chef@example.com", "password": "secret123"})
    assert r.json()["redirect"] == "/admin"
    assert chef.get("/admin", follow_redirects=False).status_code == 200

    client.post("/login", json={"email": "admin@fizzpan.local", "password": "admin123"})
    r = client.put(f"/admin/edit-user/{user_id}", json={"role": "user"})
    assert r.status_code == 200

    r = chef.get("/admin", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/user"
