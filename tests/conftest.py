# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Sets up environment variables before any app imports and provides an
# in-memory store, the workflow engine, and the two parties used throughout:
# organizer "A1" (Acme Events) and supplier "S1" (Best Catering).
# =============================================================================

import os

# app.config loads settings at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("ADVISORY_STEP_RETRIES", "1")
os.environ.setdefault("RATE_LIMIT", "30/minute")

import asyncio
from collections import defaultdict

import pytest

from app.database.memory_store import MemoryStore
from app.database.store import StoreError
from app.modules.auth.schemas import Actor, AuthUser, UserRole
from app.modules.connections.schemas import Party
from app.modules.connections.service import ConnectionWorkflowEngine


class FlakyStore(MemoryStore):
    """MemoryStore that raises StoreError for scripted (operation, table) pairs.

    Also records calls made from a thread that is running an event loop, since
    blocking store access belongs in the threadpool.
    """

    def __init__(self):
        super().__init__()
        self._failures = defaultdict(int)
        self._codes = {}
        self.loop_calls = []

    def fail(self, operation: str, table: str, times: int = 1, code: str = None):
        self._failures[(operation, table)] += times
        self._codes[(operation, table)] = code

    def _maybe_fail(self, operation: str, table: str):
        try:
            asyncio.get_running_loop()
            self.loop_calls.append((operation, table))
        except RuntimeError:
            pass
        key = (operation, table)
        if self._failures[key] > 0:
            self._failures[key] -= 1
            raise StoreError(f"simulated {operation} failure on {table}", code=self._codes.get(key))

    def select(self, table, filters=None, **kwargs):
        self._maybe_fail("select", table)
        return super().select(table, filters, **kwargs)

    def insert(self, table, row):
        self._maybe_fail("insert", table)
        return super().insert(table, row)

    def update(self, table, filters, patch):
        self._maybe_fail("update", table)
        return super().update(table, filters, patch)


async def wait_until(predicate, timeout: float = 2.0):
    """Poll until predicate() is truthy; realtime refreshes land on later loop turns."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def engine(store):
    return ConnectionWorkflowEngine(store)


@pytest.fixture
def requester():
    return Party(id="A1", name="Acme Events", email="a@acme.test")


@pytest.fixture
def supplier():
    return Party(id="S1", name="Best Catering", email="s@best.test")


@pytest.fixture
def admin_actor(requester):
    return Actor(id=requester.id, email=requester.email, role=UserRole.ADMIN, name=requester.name)


@pytest.fixture
def supplier_actor(supplier):
    return Actor(id=supplier.id, email=supplier.email, role=UserRole.SUPPLIER, name=supplier.name)


@pytest.fixture
def admin_user():
    return AuthUser(
        id="A1",
        email="a@acme.test",
        user_metadata={"user_type": "admin", "company_name": "Acme Events", "full_name": "Ada Admin"},
    )


@pytest.fixture
def supplier_user():
    return AuthUser(
        id="S1",
        email="s@best.test",
        user_metadata={
            "user_type": "supplier",
            "company_name": "Best Catering",
            "service_type": "Dessert Caterers",
            "address": "12 Harbour Road",
        },
    )
