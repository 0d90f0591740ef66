# tests/test_postgrest.py
import asyncio
import json

import httpx
import pytest

from fizzpan.errors import AuthError, BackendError, NotFoundError, SessionExpired
from fizzpan.postgrest import OBJECT_MEDIA_TYPE, RestTransport, encode_filter, parse_content_range
from fizzpan.query import TableQuery

URL = "https://fizzpan.example.co"
KEY = "anon-key"


def _transport(handler):
    return RestTransport(URL, KEY, transport=httpx.MockTransport(handler))


def _table(rest, name, token=None):
    return TableQuery(name, lambda query: rest.execute(query, token))


def test_select_maps_to_query_parameters_and_headers():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json={"id": 1, "name": "Taiyaki Keju"})

    rest = _transport(handler)
    q = _table(rest, "products", token="user-jwt").select("id, name").eq("id", 1).order("created_at", desc=True).single()
    res = asyncio.run(q.execute())

    assert res.data == {"id": 1, "name": "Taiyaki Keju"}
    req = seen[0]
    assert req.method == "GET"
    assert req.url.path == "/rest/v1/products"
    assert req.url.params["select"] == "id,name"
    assert req.url.params["id"] == "eq.1"
    assert req.url.params["order"] == "created_at.desc"
    assert req.headers["accept"] == OBJECT_MEDIA_TYPE
    assert req.headers["apikey"] == KEY
    assert req.headers["authorization"] == "Bearer user-jwt"


def test_anonymous_requests_send_the_anon_key_as_bearer():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    asyncio.run(_table(_transport(handler), "products").select().execute())
    assert seen[0].headers["authorization"] == f"Bearer {KEY}"


def test_exact_count_reads_content_range():
    def handler(request):
        assert request.method == "HEAD"
        assert request.headers["prefer"] == "count=exact"
        return httpx.Response(200, headers={"Content-Range": "*/42"})

    res = asyncio.run(_table(_transport(handler), "profiles").select("*", count="exact", head=True).execute())
    assert res.count == 42
    assert res.data is None


def test_insert_posts_json_and_asks_for_representation():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json=[{"id": 9, "quantity": 2}])

    rest = _transport(handler)
    asyncio.run(_table(rest, "carts").insert({"user_id": "u1", "product_id": 3, "quantity": 2}).execute())
    req = seen[0]
    assert req.method == "POST"
    assert req.headers["prefer"] == "return=representation"
    assert json.loads(req.content) == [{"user_id": "u1", "product_id": 3, "quantity": 2}]


def test_error_mapping():
    def handler(request):
        if request.url.path.endswith("/orders"):
            return httpx.Response(401, json={"message": "JWT expired", "code": "PGRST301"})
        if request.url.path.endswith("/products"):
            return httpx.Response(406, json={"message": "JSON object requested, multiple (or no) rows returned",
                                             "code": "PGRST116"})
        return httpx.Response(403, json={"message": "permission denied for table carts", "code": "42501"})

    rest = _transport(handler)
    with pytest.raises(SessionExpired):
        asyncio.run(_table(rest, "orders").select().execute())
    with pytest.raises(NotFoundError):
        asyncio.run(_table(rest, "products").select().eq("id", 7).single().execute())
    with pytest.raises(BackendError) as exc:
        asyncio.run(_table(rest, "carts").select().execute())
    assert exc.value.status_code == 403
    assert exc.value.code == "42501"


def test_maybe_single_over_list_response():
    rest = _transport(lambda request: httpx.Response(200, json=[]))
    res = asyncio.run(_table(rest, "carts").select("id, quantity").eq("user_id", "u1").maybe_single().execute())
    assert res.data is None


def test_password_grant_and_auth_errors():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.params.get("grant_type") == "password":
            return httpx.Response(400, json={"error_code": "invalid_credentials", "msg": "Invalid login credentials"})
        return httpx.Response(401, json={"msg": "invalid JWT"})

    rest = _transport(handler)
    with pytest.raises(AuthError) as exc:
        asyncio.run(rest.auth("password", {"email": "a@b.co", "password": "x"}))
    assert exc.value.message == "Invalid login credentials"
    assert exc.value.code == "invalid_credentials"
    assert seen[0].url.path == "/auth/v1/token"

    with pytest.raises(SessionExpired):
        asyncio.run(rest.auth("user", access_token="stale"))


def test_filter_encoding():
    assert encode_filter("eq", None) == "is.null"
    assert encode_filter("in", ["pending", "processing"]) == "in.(pending,processing)"
    assert encode_filter("eq", "a,b") == 'eq."a,b"'
    assert parse_content_range("0-9/120") == 120
    assert parse_content_range("0-9/*") is None
