import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .errors import AuthError, BackendError, NotFoundError, SessionExpired
from .query import Query, QueryResult, compact_select

logger = logging.getLogger(__name__)

OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"

_AUTH_ROUTES: Dict[str, Tuple[str, str, Optional[Dict[str, str]]]] = {
    "signup": ("POST", "/auth/v1/signup", None),
    "password": ("POST", "/auth/v1/token", {"grant_type": "password"}),
    "refresh": ("POST", "/auth/v1/token", {"grant_type": "refresh_token"}),
    "logout": ("POST", "/auth/v1/logout", None),
    "user": ("GET", "/auth/v1/user", None),
}


def _encode_value(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    text = str(value)
    if any(ch in text for ch in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def encode_filter(op: str, value: Any) -> str:
    if op == "in":
        return "in.(" + ",".join(_encode_value(v) for v in value) + ")"
    if value is None:
        return "is.null" if op == "eq" else "not.is.null"
    return f"{op}.{_encode_value(value)}"


def parse_content_range(header: Optional[str]) -> Optional[int]:
    # "0-9/42" or "*/42"; "*" total means the count was not requested
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


def _payload(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RestTransport:
    """Talks to the hosted backend: table API under /rest/v1, auth under /auth/v1."""

    def __init__(self, url: str, key: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url.rstrip("/")
        self.key = key
        self.timeout = timeout
        self.transport = transport

    def _headers(self, access_token: Optional[str]) -> Dict[str, str]:
        return {"apikey": self.key, "Authorization": f"Bearer {access_token or self.key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.url, timeout=self.timeout, transport=self.transport)

    def build_request(self, query: Query) -> Tuple[str, List[Tuple[str, str]], Dict[str, str], Any]:
        params: List[Tuple[str, str]] = [("select", compact_select(query.columns))]
        for column, op, value in query.filters:
            params.append((column, encode_filter(op, value)))
        if query.orders:
            params.append(("order", ",".join(
                f"{column}.{'asc' if ascending else 'desc'}" for column, ascending in query.orders
            )))
        if query.limit is not None and query.action == "select":
            params.append(("limit", str(query.limit)))

        headers: Dict[str, str] = {}
        prefer = []
        if query.single:
            headers["Accept"] = OBJECT_MEDIA_TYPE
        if query.count:
            prefer.append(f"count={query.count}")
        if query.action != "select":
            prefer.append("return=representation")
        if prefer:
            headers["Prefer"] = ",".join(prefer)

        method = {"select": "HEAD" if query.head else "GET", "insert": "POST",
                  "update": "PATCH", "delete": "DELETE"}[query.action]
        body = query.values if query.action in ("insert", "update") else None
        return method, params, headers, body

    async def execute(self, query: Query, access_token: Optional[str] = None) -> QueryResult:
        method, params, headers, body = self.build_request(query)
        headers.update(self._headers(access_token))
        async with self._client() as client:
            response = await client.request(
                method, f"/rest/v1/{query.table}", params=params, headers=headers, json=body
            )
        payload = _payload(response)
        if response.status_code == 401:
            raise SessionExpired(BackendError.from_payload(payload, 401).message)
        if response.status_code >= 400:
            error = BackendError.from_payload(payload, response.status_code)
            if error.code == "PGRST116":
                raise NotFoundError(error.message)
            raise error

        count = parse_content_range(response.headers.get("content-range"))
        if query.head:
            return QueryResult(data=None, count=count)
        if query.maybe_single and not query.single:
            rows = payload or []
            if len(rows) > 1:
                raise BackendError("JSON object requested, multiple rows returned", status_code=406,
                                   code="PGRST116")
            return QueryResult(data=rows[0] if rows else None, count=count)
        return QueryResult(data=payload, count=count)

    async def auth(self, action: str, payload: Optional[Dict[str, Any]] = None,
                   access_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        method, path, params = _AUTH_ROUTES[action]
        async with self._client() as client:
            response = await client.request(
                method, path, params=params, json=payload if method == "POST" else None,
                headers=self._headers(access_token),
            )
        body = _payload(response)
        if response.status_code == 401 and action in ("user", "logout"):
            raise SessionExpired(AuthError.from_payload(body, 401).message)
        if response.status_code >= 400:
            raise AuthError.from_payload(body, response.status_code)
        return body
