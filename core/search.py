# core/search.py
import asyncio
import os
from dataclasses import replace
from typing import List, Optional, Set

from backends.base import Query

from . import storage
from .errors import RemoteDataError
from .gate import RequestGate
from .logger import get_logger
from .models import Product, SearchFilters, SearchQueryState

logger = get_logger(__name__)

PRODUCTS_TABLE = os.getenv("PRODUCTS_TABLE", "products")
ANALYTICS_TABLE = os.getenv("ANALYTICS_TABLE", "search_analytics")
MIN_QUERY_LENGTH = int(os.getenv("MIN_QUERY_LENGTH", "2"))
SEARCH_RESULT_LIMIT = int(os.getenv("SEARCH_RESULT_LIMIT", "50"))
RECENT_SEARCH_LIMIT = int(os.getenv("RECENT_SEARCH_LIMIT", "10"))
POPULAR_SEARCH_LIMIT = 8

PRODUCT_COLUMNS = "*,vendor:vendor_id(full_name)"

DEFAULT_POPULAR_SEARCHES = [
    "Organic tomatoes",
    "Fresh berries",
    "Local honey",
    "Free-range eggs",
    "Seasonal vegetables",
    "Fresh milk",
    "Organic carrots",
    "Apples",
]

# sort key -> (column, ascending); anything else falls back to "recent"
SORT_ORDER = {
    "price_asc": ("price", True),
    "price_desc": ("price", False),
    "name": ("name", True),
    "recent": ("created_at", False),
}


def search_signature(text: str, filters: SearchFilters) -> str:
    return f"{text}:{filters.signature_part()}"


def build_search_query(
    text: str, filters: SearchFilters, limit: int = SEARCH_RESULT_LIMIT
) -> Query:
    pattern = f"%{text.strip()}%"
    query = (
        Query(PRODUCTS_TABLE, columns=PRODUCT_COLUMNS)
        .or_ilike(["name", "description"], pattern)
        .eq("is_available", True)
    )
    if filters.category:
        query.eq("category", filters.category)
    if filters.min_price is not None:
        query.gte("price", filters.min_price)
    if filters.max_price is not None:
        query.lte("price", filters.max_price)
    if filters.vendor_id:
        query.eq("vendor_id", filters.vendor_id)
    column, ascending = SORT_ORDER.get(filters.sort_by or "recent", SORT_ORDER["recent"])
    return query.order(column, ascending=ascending).limit(limit)


class SearchStore:
    """
    Product search results plus the query/filters that produced them.

    Identical searches (same trimmed text and filters) are issued once: a
    repeat is dropped while the first is in flight and after it completed.
    When searches overlap, the most recently issued one wins; responses for
    any older signature are discarded on arrival. Going back to an older
    search makes it current again, re-issuing it if it already completed.

    Recent searches are kept newest first and, when history_db is given,
    persisted to SQLite so they survive restarts.
    """

    def __init__(self, remote, history_db: Optional[str] = None):
        self.remote = remote
        self.history_db = history_db
        self._state = SearchQueryState()
        self._gate = RequestGate("search")
        self._background: Set[asyncio.Task] = set()
        self.popular_searches: List[str] = list(DEFAULT_POPULAR_SEARCHES)
        self.is_loading_popular = False
        self.recent_searches: List[str] = []
        if history_db:
            storage.ensure_db(history_db)
            self.recent_searches = storage.load_recent_searches(history_db)[:RECENT_SEARCH_LIMIT]

    @property
    def state(self) -> SearchQueryState:
        return self._state

    @property
    def results(self):
        return self._state.results

    def set_query(self, text: str) -> None:
        self._state = replace(self._state, query_text=text)

    def set_filters(self, **changes) -> None:
        self._state = replace(self._state, filters=self._state.filters.merged(**changes))

    def clear_filters(self) -> None:
        self._state = replace(self._state, filters=SearchFilters())

    async def search_products(
        self, text: str, filters: Optional[SearchFilters] = None
    ) -> bool:
        """
        Returns True when fresh results were applied.
        """
        filters = filters if filters is not None else self._state.filters

        text = (text or "").strip()
        if len(text) < MIN_QUERY_LENGTH:
            self._state = replace(self._state, results=(), is_searching=False, error=None)
            return False

        signature = search_signature(text, filters)
        if not self._gate.should_proceed(signature):
            if signature == self._state.last_issued_signature:
                logger.debug("Skipping duplicate search for %r.", text)
                return False
            if self._gate.is_in_flight(signature):
                # going back to a search that is still out: its response wins again
                logger.debug("Search for %r still in flight; making it current.", text)
                self._state = replace(
                    self._state, last_issued_signature=signature, is_searching=True, error=None
                )
                return False
            logger.debug("Returning to earlier search for %r; issuing it again.", text)
            self._gate.forget(signature)
            self._gate.should_proceed(signature)

        self._state = replace(
            self._state, last_issued_signature=signature, is_searching=True, error=None
        )
        logger.info("Searching products for %r with filters %s.", text, filters.signature_part())
        self.add_recent_search(text)
        self._spawn(self._track_search(text))

        try:
            rows = await self.remote.select(build_search_query(text, filters))
            if not isinstance(rows, list):
                raise RemoteDataError(f"products select returned {type(rows).__name__}")
            products = tuple(Product.from_row(r) for r in rows)
        except Exception as e:
            if not self._settle(signature):
                return False
            message = str(e) or "Failed to search products"
            logger.error("Search for %r failed: %s", text, message)
            self._state = replace(self._state, results=(), is_searching=False, error=message)
            return False

        if not self._settle(signature):
            return False
        logger.info("Search for %r returned %d products.", text, len(products))
        self._state = replace(self._state, results=products, is_searching=False, error=None)
        return True

    def _settle(self, signature: str) -> bool:
        """Close out signature at the gate; False if a newer search superseded it."""
        if signature != self._state.last_issued_signature:
            self._gate.release(signature)
            logger.info("Discarding superseded search response for %r.", signature)
            return False
        self._gate.mark_complete(signature)
        return True

    def clear_search(self) -> None:
        self._gate.reset()
        self._state = replace(
            self._state,
            query_text="",
            results=(),
            error=None,
            last_issued_signature="",
            is_searching=False,
        )

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_background(self) -> None:
        """Wait for fire-and-forget work (search analytics) to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _track_search(self, text: str) -> None:
        try:
            await self.remote.rpc(
                "increment_search_count", {"p_search_query": text.strip().lower()}
            )
        except Exception as e:
            logger.error("Error saving search analytics for %r: %s", text, e)

    def add_recent_search(self, text: str) -> None:
        trimmed = text.strip()
        if len(trimmed) < MIN_QUERY_LENGTH:
            return
        kept = [q for q in self.recent_searches if q.lower() != trimmed.lower()]
        self.recent_searches = [trimmed] + kept[: RECENT_SEARCH_LIMIT - 1]
        self._persist_recent()

    def remove_recent_search(self, text: str) -> None:
        self.recent_searches = [q for q in self.recent_searches if q != text]
        self._persist_recent()

    def clear_recent_searches(self) -> None:
        self.recent_searches = []
        self._persist_recent()

    def _persist_recent(self) -> None:
        if not self.history_db:
            return
        try:
            storage.save_recent_searches(self.recent_searches, self.history_db)
        except Exception as e:
            logger.warning("Failed to persist recent searches: %s", e)

    async def fetch_popular_searches(self) -> List[str]:
        self.is_loading_popular = True
        try:
            query = (
                Query(ANALYTICS_TABLE, columns="search_query,search_count")
                .order("search_count", ascending=False)
                .limit(POPULAR_SEARCH_LIMIT)
            )
            rows = await self.remote.select(query)
            searches = [
                r["search_query"] for r in rows
                if isinstance(r, dict) and isinstance(r.get("search_query"), str)
            ]
            self.popular_searches = searches or list(DEFAULT_POPULAR_SEARCHES)
        except Exception as e:
            logger.error("Error fetching popular searches: %s", e)
            self.popular_searches = list(DEFAULT_POPULAR_SEARCHES)
        finally:
            self.is_loading_popular = False
        return self.popular_searches
