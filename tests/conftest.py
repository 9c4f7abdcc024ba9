import asyncio
from dataclasses import dataclass
from typing import List, Optional

import pytest

from backends.memory import MemoryRemote
from core.errors import RemoteError
from core.notifier import Notifier
from core.search import SearchStore
from core.wishlist import WishlistStore

PRODUCT_ROWS = [
    {
        "id": "p1", "vendor_id": "v1", "name": "Green Apple", "description": "Crisp apples",
        "price": 3.5, "category": "Fruits", "stock": 20, "unit": "kg",
        "is_available": True, "created_at": "2025-01-03T10:00:00+00:00",
        "vendor": {"full_name": "Ada Farms"},
    },
    {
        "id": "p2", "vendor_id": "v2", "name": "Apple Juice", "description": None,
        "price": 6.0, "category": "Drinks", "stock": 5, "unit": "l",
        "is_available": True, "created_at": "2025-01-05T10:00:00+00:00",
    },
    {
        "id": "p3", "vendor_id": "v1", "name": "Carrots", "description": "Organic apple-sweet carrots",
        "price": 1.25, "category": "Vegetable", "stock": 0, "unit": "kg",
        "is_available": True, "created_at": "2025-01-01T10:00:00+00:00",
    },
    {
        "id": "p4", "vendor_id": "v3", "name": "Apple Pie", "description": "Sold out",
        "price": 9.0, "category": "Bakery", "stock": 0, "unit": "pc",
        "is_available": False, "created_at": "2025-01-04T10:00:00+00:00",
    },
]


@dataclass
class Held:
    op: str
    event: asyncio.Event
    error: Optional[Exception] = None


class GatedRemote:
    """
    Async remote over a MemoryRemote. With holding=True every call parks
    until the test releases it, so responses can be resolved in any order.
    """

    def __init__(self, backend: Optional[MemoryRemote] = None):
        self.backend = backend or MemoryRemote()
        self.calls: List[str] = []
        self.failures = {}
        self.holding = False
        self.held: List[Held] = []

    async def _call(self, op, fn, *args):
        self.calls.append(op)
        error = None
        if self.holding:
            held = Held(op, asyncio.Event())
            self.held.append(held)
            await held.event.wait()
            error = held.error
        error = error or self.failures.get(op)
        if error is not None:
            raise error
        return fn(*args)

    def release(self, index: int = 0, error: Optional[Exception] = None) -> str:
        held = self.held.pop(index)
        held.error = error
        held.event.set()
        return held.op

    def count(self, op: str) -> int:
        return self.calls.count(op)

    async def select(self, query):
        return await self._call("select", self.backend.select, query)

    async def insert(self, table, row):
        return await self._call("insert", self.backend.insert, table, row)

    async def delete(self, table, match):
        return await self._call("delete", self.backend.delete, table, match)

    async def update(self, table, patch, match):
        return await self._call("update", self.backend.update, table, patch, match)

    async def rpc(self, function, params):
        return await self._call("rpc", self.backend.rpc, function, params)


def boom(message: str = "connection lost") -> RemoteError:
    return RemoteError(message)


@pytest.fixture
def backend():
    return MemoryRemote(
        tables={
            "products": PRODUCT_ROWS,
            "wishlist": [
                {"user_id": "alice", "product_id": "p1"},
                {"user_id": "alice", "product_id": "p2"},
                {"user_id": "bob", "product_id": "p3"},
            ],
        }
    )


@pytest.fixture
def remote(backend):
    return GatedRemote(backend)


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def wishlist(remote, notifier):
    return WishlistStore(remote, notifier)


@pytest.fixture
def search(remote):
    return SearchStore(remote)


async def settle(rounds: int = 10) -> None:
    """Let every runnable task advance to its next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)
