import asyncio

import pytest

from fizzpan.config import Settings
from fizzpan.database import MemoryDatabase
from fizzpan.session import AppSession


class Passthrough:
    """Wraps a transport so a test can intercept single calls."""

    def __init__(self, inner):
        self.inner = inner

    async def execute(self, query, access_token=None):
        return await self.inner.execute(query, access_token)

    async def auth(self, action, payload=None, access_token=None):
        return await self.inner.auth(action, payload, access_token)


@pytest.fixture
def db():
    database = MemoryDatabase()
    database.seed("admin@fizzpan.local", "admin123", "admin")
    return database


@pytest.fixture
def make_session():
    def _make(transport, **overrides):
        return AppSession("test-session", transport, Settings(**overrides))
    return _make


@pytest.fixture
def customer(db, make_session):
    s = make_session(db)
    asyncio.run(s.auth.sign_up("bob@example.com", "secret123", "bob"))
    return s
