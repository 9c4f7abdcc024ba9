# backends/memory.py
import copy
import re
import threading
from typing import Any, Callable, Dict, List, Optional

from core.errors import RemoteError
from core.logger import get_logger

from .base import Query

logger = get_logger(__name__)


def _like_to_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(p) for p in str(pattern).split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _matches(row: Dict[str, Any], column: str, op: str, value: Any) -> bool:
    actual = row.get(column)
    if op == "eq":
        return actual == value
    if op == "neq":
        return actual != value
    if op == "ilike":
        return actual is not None and bool(_like_to_regex(value).match(str(actual)))
    if actual is None:
        return False
    if op == "gt":
        return actual > value
    if op == "gte":
        return actual >= value
    if op == "lt":
        return actual < value
    if op == "lte":
        return actual <= value
    raise RemoteError(f"Unsupported filter operator: {op}")


def increment_search_count(tables: Dict[str, List[Dict[str, Any]]], params: Dict[str, Any]):
    query = str(params.get("p_search_query", "")).strip().lower()
    if not query:
        return None
    rows = tables.setdefault("search_analytics", [])
    for row in rows:
        if row.get("search_query") == query:
            row["search_count"] = row.get("search_count", 0) + 1
            return row["search_count"]
    rows.append({"search_query": query, "search_count": 1})
    return 1


DEFAULT_FUNCTIONS: Dict[str, Callable] = {
    "increment_search_count": increment_search_count,
}


class MemoryRemote:
    """
    In-process table store with the same surface as RestRemote. Used for
    local runs (backend "memory" in config.json) and tests.

    Rows are deep-copied on the way in and out so callers never share
    mutable rows with the store.
    """

    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        unique: Optional[Dict[str, List[str]]] = None,
    ):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.unique = unique if unique is not None else {"wishlist": ["user_id", "product_id"]}
        self.functions: Dict[str, Callable] = dict(DEFAULT_FUNCTIONS)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def select(self, query: Query) -> List[Dict[str, Any]]:
        with self._lock:
            self.calls.append(f"select:{query.table}")
            rows = [
                r for r in self._rows(query.table)
                if all(_matches(r, c, op, v) for c, op, v in query.filters)
                and (not query.any_of or any(_matches(r, c, op, v) for c, op, v in query.any_of))
            ]
            if query.order_by:
                col = query.order_by
                present = [r for r in rows if r.get(col) is not None]
                missing = [r for r in rows if r.get(col) is None]
                present.sort(key=lambda r: r[col], reverse=not query.ascending)
                rows = present + missing
            if query.row_limit is not None:
                rows = rows[: query.row_limit]
            return copy.deepcopy(rows)

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self.calls.append(f"insert:{table}")
            key_cols = self.unique.get(table)
            if key_cols:
                key = tuple(row.get(c) for c in key_cols)
                for existing in self._rows(table):
                    if tuple(existing.get(c) for c in key_cols) == key:
                        logger.debug("Rejecting duplicate %s row %s.", table, key)
                        raise RemoteError(
                            f"duplicate key value violates unique constraint on {table} {key}"
                        )
            stored = copy.deepcopy(row)
            self._rows(table).append(stored)
            return copy.deepcopy(stored)

    def delete(self, table: str, match: Dict[str, Any]) -> None:
        if not match:
            raise RemoteError("Refusing to run an unfiltered delete")
        with self._lock:
            self.calls.append(f"delete:{table}")
            self.tables[table] = [
                r for r in self._rows(table)
                if not all(r.get(c) == v for c, v in match.items())
            ]

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> None:
        if not match:
            raise RemoteError("Refusing to run an unfiltered update")
        with self._lock:
            self.calls.append(f"update:{table}")
            for r in self._rows(table):
                if all(r.get(c) == v for c, v in match.items()):
                    r.update(copy.deepcopy(patch))

    def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        handler = self.functions.get(function)
        if handler is None:
            raise RemoteError(f"Unknown function: {function}")
        with self._lock:
            self.calls.append(f"rpc:{function}")
            return handler(self.tables, params)
