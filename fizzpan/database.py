import hashlib
import logging
import os
import secrets
import time
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import AuthError, BackendError, NotFoundError, SessionExpired
from .query import Column, Embed, Query, QueryResult, matches, parse_select, same_value

# This file holds the in-memory stand-in for the hosted backend: the five
# tables, the auth users and the issued tokens. It answers the same queries
# and auth calls as the hosted service so the app can run without it.

logger = logging.getLogger(__name__)

TABLES: Dict[str, Dict[str, Any]] = {
    "profiles": {
        "auto_id": False,
        "required": ("id",),
        "defaults": {"username": None, "role": "user", "avatar_url": None},
        "updated_at": True,
    },
    "products": {
        "auto_id": True,
        "required": ("name", "price"),
        "defaults": {"description": "", "stock": 0, "image": "", "category": None},
        "updated_at": False,
    },
    "carts": {
        "auto_id": True,
        "required": ("user_id", "product_id"),
        "defaults": {"quantity": 1},
        "updated_at": False,
    },
    "orders": {
        "auto_id": True,
        "required": ("user_id", "total_amount"),
        "defaults": {"status": "pending", "contact_method": None, "contact_info": None, "notes": None},
        "updated_at": True,
    },
    "order_items": {
        "auto_id": True,
        "required": ("order_id", "product_id", "quantity", "price"),
        "defaults": {},
        "updated_at": False,
    },
}

# (table, foreign key column) -> referenced table
RELATIONS: Dict[Tuple[str, str], str] = {
    ("carts", "user_id"): "profiles",
    ("carts", "product_id"): "products",
    ("orders", "user_id"): "profiles",
    ("order_items", "order_id"): "orders",
    ("order_items", "product_id"): "products",
}

SEED_PRODUCTS = [
    ("Taiyaki Cokelat", "Crispy taiyaki filled with melted chocolate.", 15000, 40, "sweet"),
    ("Taiyaki Keju", "Savory cheese filling with a golden crust.", 17000, 35, "savory"),
    ("Taiyaki Kacang Merah", "Classic sweet red bean paste.", 15000, 30, "sweet"),
    ("Taiyaki Sosis", "Beef sausage and mayo.", 18000, 25, "savory"),
    ("Taiyaki Matcha", "Matcha custard with a hint of white chocolate.", 19000, 20, "sweet"),
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    if not salt:
        salt = os.urandom(16).hex()
    hashed = hashlib.sha256((salt + password).encode("utf-8")).hexdigest()
    return hashed, salt


def _sort_key(value: Any) -> Tuple[int, Any]:
    return (value is None, "" if value is None else value)


class MemoryDatabase:
    def __init__(self, access_token_ttl: int = 3600, clock: Callable[[], float] = time.time):
        self.access_token_ttl = access_token_ttl
        self.clock = clock
        self.tables: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.access_tokens: Dict[str, Tuple[str, float]] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self._seq: Dict[str, int] = {}
        self.calls = 0
        self.reset()

    def reset(self):
        self.tables = {name: {} for name in TABLES}
        self._seq = {name: 0 for name in TABLES}
        self.users.clear()
        self.access_tokens.clear()
        self.refresh_tokens.clear()
        self.calls = 0

    # ---------------------------
    # Table queries
    # ---------------------------
    async def execute(self, query: Query, access_token: Optional[str] = None) -> QueryResult:
        self.calls += 1
        if access_token:
            self._user_for_token(access_token)
        if query.table not in self.tables:
            raise BackendError(
                f'relation "public.{query.table}" does not exist', status_code=404, code="42P01"
            )
        if query.action == "select":
            rows = self._select_rows(query)
        elif query.action == "insert":
            rows = self._insert_rows(query)
        elif query.action == "update":
            rows = self._update_rows(query)
        elif query.action == "delete":
            rows = self._delete_rows(query)
        else:
            raise BackendError(f"unsupported action {query.action}")

        count = None
        if query.count == "exact":
            count = len(rows)
        if query.action == "select" and query.limit is not None:
            rows = rows[: query.limit]
        if query.head:
            return QueryResult(data=None, count=count)

        items = parse_select(query.columns)
        data = [self._project(query.table, row, items) for row in rows]
        if query.single or query.maybe_single:
            if len(data) == 1:
                return QueryResult(data=data[0], count=count)
            if not data and query.maybe_single:
                return QueryResult(data=None, count=count)
            raise NotFoundError()
        return QueryResult(data=data, count=count)

    def _select_rows(self, query: Query) -> List[Dict[str, Any]]:
        rows = [row for row in self.tables[query.table].values() if matches(row, query.filters)]
        # later keys first so the first order() call wins
        for column, ascending in reversed(query.orders):
            rows.sort(key=lambda r: _sort_key(r.get(column)), reverse=not ascending)
        return rows

    def _insert_rows(self, query: Query) -> List[Dict[str, Any]]:
        schema = TABLES[query.table]
        prepared = []
        for values in query.values or []:
            row = dict(schema["defaults"])
            row.update(values)
            for column in schema["required"]:
                if row.get(column) is None:
                    raise BackendError(
                        f'null value in column "{column}" of relation "{query.table}" violates not-null constraint',
                        status_code=400,
                        code="23502",
                    )
            prepared.append(row)

        created = []
        for row in prepared:
            if schema["auto_id"] and row.get("id") is None:
                self._seq[query.table] += 1
                row["id"] = self._seq[query.table]
            if row["id"] in self.tables[query.table]:
                raise BackendError(
                    f'duplicate key value violates unique constraint "{query.table}_pkey"',
                    status_code=409,
                    code="23505",
                )
            row.setdefault("created_at", _now())
            if schema["updated_at"]:
                row.setdefault("updated_at", row["created_at"])
            self.tables[query.table][row["id"]] = row
            created.append(row)
        return created

    def _update_rows(self, query: Query) -> List[Dict[str, Any]]:
        if not query.filters:
            raise BackendError("UPDATE requires a WHERE clause", status_code=400, code="21000")
        rows = self._select_rows(query)
        for row in rows:
            row.update(query.values or {})
            if TABLES[query.table]["updated_at"]:
                row["updated_at"] = _now()
        return rows

    def _delete_rows(self, query: Query) -> List[Dict[str, Any]]:
        if not query.filters:
            raise BackendError("DELETE requires a WHERE clause", status_code=400, code="21000")
        rows = self._select_rows(query)
        for row in rows:
            del self.tables[query.table][row["id"]]
        return rows

    def _find(self, table: str, row_id: Any) -> Optional[Dict[str, Any]]:
        if row_id is None:
            return None
        found = self.tables[table].get(row_id)
        if found is not None:
            return found
        for row in self.tables[table].values():
            if same_value(row["id"], row_id):
                return row
        return None

    def _project(self, table: str, row: Dict[str, Any], items: List[Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for item in items:
            if isinstance(item, Column):
                if item.name == "*":
                    out.update(deepcopy(row))
                else:
                    out[item.alias or item.name] = deepcopy(row.get(item.name))
            else:
                out[item.alias] = self._embed(table, row, item)
        return out

    def _embed(self, table: str, row: Dict[str, Any], embed: Embed) -> Any:
        target = RELATIONS.get((table, embed.relation))
        if target is not None:
            ref = self._find(target, row.get(embed.relation))
            return self._project(target, ref, embed.fields) if ref is not None else None
        if embed.relation in self.tables:
            child = embed.relation
            for (child_table, column), parent in RELATIONS.items():
                if child_table == child and parent == table:
                    return [
                        self._project(child, r, embed.fields)
                        for r in self.tables[child].values()
                        if same_value(r.get(column), row["id"])
                    ]
            for (parent_table, column), ref_table in RELATIONS.items():
                if parent_table == table and ref_table == child:
                    ref = self._find(child, row.get(column))
                    return self._project(child, ref, embed.fields) if ref is not None else None
        raise BackendError(
            f"Could not find a relationship between '{table}' and '{embed.relation}'",
            status_code=400,
            code="PGRST200",
        )

    # ---------------------------
    # Auth
    # ---------------------------
    async def auth(self, action: str, payload: Optional[Dict[str, Any]] = None,
                   access_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        self.calls += 1
        payload = payload or {}
        if action == "signup":
            return self._sign_up(payload.get("email", ""), payload.get("password", ""), payload.get("data") or {})
        if action == "password":
            return self._sign_in(payload.get("email", ""), payload.get("password", ""))
        if action == "refresh":
            return self._refresh(payload.get("refresh_token", ""))
        if action == "logout":
            self._sign_out(access_token)
            return None
        if action == "user":
            return self._public_user(self.users[self._user_for_token(access_token)])
        raise BackendError(f"unsupported auth action {action}")

    def _public_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": user["id"],
            "email": user["email"],
            "aud": "authenticated",
            "user_metadata": deepcopy(user["user_metadata"]),
            "created_at": user["created_at"],
        }

    def _issue_session(self, user: Dict[str, Any]) -> Dict[str, Any]:
        access_token = secrets.token_urlsafe(32)
        refresh_token = secrets.token_urlsafe(24)
        expires_at = self.clock() + self.access_token_ttl
        self.access_tokens[access_token] = (user["id"], expires_at)
        self.refresh_tokens[refresh_token] = user["id"]
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": self.access_token_ttl,
            "expires_at": int(expires_at),
            "user": self._public_user(user),
        }

    def _sign_up(self, email: str, password: str, data: Dict[str, Any]) -> Dict[str, Any]:
        email = email.strip().lower()
        if not email or not password:
            raise AuthError("Signup requires a valid password", status_code=422, code="validation_failed")
        if len(password) < 6:
            raise AuthError("Password should be at least 6 characters.", status_code=422, code="weak_password")
        if any(u["email"] == email for u in self.users.values()):
            raise AuthError("User already registered", status_code=422, code="user_already_exists")
        password_hash, salt = _hash_password(password)
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": password_hash,
            "salt": salt,
            "user_metadata": dict(data),
            "created_at": _now(),
        }
        self.users[user["id"]] = user
        return self._issue_session(user)

    def _sign_in(self, email: str, password: str) -> Dict[str, Any]:
        email = email.strip().lower()
        for user in self.users.values():
            if user["email"] == email:
                test_hash, _ = _hash_password(password, user["salt"])
                if test_hash == user["password_hash"]:
                    return self._issue_session(user)
                break
        raise AuthError("Invalid login credentials", status_code=400, code="invalid_credentials")

    def _refresh(self, refresh_token: str) -> Dict[str, Any]:
        user_id = self.refresh_tokens.pop(refresh_token, None)
        if user_id is None or user_id not in self.users:
            raise AuthError("Invalid Refresh Token: Refresh Token Not Found", status_code=400,
                            code="refresh_token_not_found")
        return self._issue_session(self.users[user_id])

    def _sign_out(self, access_token: Optional[str]):
        if not access_token or access_token not in self.access_tokens:
            return
        user_id, _ = self.access_tokens.pop(access_token)
        for token, owner in list(self.refresh_tokens.items()):
            if owner == user_id:
                del self.refresh_tokens[token]

    def _user_for_token(self, access_token: Optional[str]) -> str:
        entry = self.access_tokens.get(access_token or "")
        if entry is None:
            raise SessionExpired("invalid JWT: unable to parse or verify signature")
        user_id, expires_at = entry
        if expires_at <= self.clock():
            raise SessionExpired("JWT expired")
        return user_id

    # ---------------------------
    # Seed data
    # ---------------------------
    def seed(self, admin_email: str, admin_password: str, admin_username: str = "admin"):
        session = self._sign_up(admin_email, admin_password, {"username": admin_username, "role": "admin"})
        self.access_tokens.clear()
        self.refresh_tokens.clear()
        admin_id = session["user"]["id"]
        self._insert_rows(Query(
            table="profiles", action="insert",
            values=[{"id": admin_id, "username": admin_username, "role": "admin"}],
        ))
        self._insert_rows(Query(
            table="products", action="insert",
            values=[
                {"name": name, "description": description, "price": price, "stock": stock, "category": category}
                for name, description, price, stock, category in SEED_PRODUCTS
            ],
        ))
        logger.info("Seeded memory backend with admin %s and %d products", admin_email, len(SEED_PRODUCTS))
