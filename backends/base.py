# backends/base.py
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

FILTER_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "ilike")


@dataclass
class Query:
    """
    A select against one table, built the same way for every backend.

    filters are ANDed; any_of is a single OR group. ilike patterns use % as
    the wildcard. Builder methods return the query itself so calls chain.
    """
    table: str
    columns: str = "*"
    filters: List[Tuple[str, str, Any]] = field(default_factory=list)
    any_of: List[Tuple[str, str, Any]] = field(default_factory=list)
    order_by: Optional[str] = None
    ascending: bool = True
    row_limit: Optional[int] = None

    def where(self, column: str, op: str, value: Any) -> "Query":
        if op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter operator: {op}")
        self.filters.append((column, op, value))
        return self

    def eq(self, column: str, value: Any) -> "Query":
        return self.where(column, "eq", value)

    def gte(self, column: str, value: Any) -> "Query":
        return self.where(column, "gte", value)

    def lte(self, column: str, value: Any) -> "Query":
        return self.where(column, "lte", value)

    def or_ilike(self, columns: List[str], pattern: str) -> "Query":
        self.any_of = [(c, "ilike", pattern) for c in columns]
        return self

    def order(self, column: str, ascending: bool = True) -> "Query":
        self.order_by = column
        self.ascending = ascending
        return self

    def limit(self, count: int) -> "Query":
        self.row_limit = count
        return self


class AsyncRemote:
    """
    Exposes a synchronous backend to the event loop. Each call runs in a
    worker thread; callers only ever see awaitables.
    """

    def __init__(self, backend):
        self.backend = backend

    async def select(self, query: Query) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.backend.select, query)

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.backend.insert, table, row)

    async def delete(self, table: str, match: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.backend.delete, table, match)

    async def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.backend.update, table, patch, match)

    async def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.backend.rpc, function, params)
