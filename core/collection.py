# core/collection.py
from dataclasses import replace
from typing import FrozenSet, Optional

from .diff import diff_ids
from .gate import RequestGate
from .logger import get_logger
from .models import WishlistState

logger = get_logger(__name__)


class RemoteCollectionStore:
    """
    Holds the client-side copy of a remote id collection scoped to one owner.

    Reads (contains, state) never touch the network. fetch() replaces the
    collection wholesale; a response is applied only if no clear() or newer
    fetch happened since it was issued.

    Subclasses implement _load() and may extend _replaced() to keep derived
    fields in the same snapshot as the ids. Every state change goes through
    _commit(), so a subclass can observe all of them in one place.
    """

    def __init__(self, name: str, initial: Optional[WishlistState] = None):
        self.name = name
        self._initial = initial or WishlistState()
        self._state = self._initial
        self._gate = RequestGate(name)
        self._generation = 0

    @property
    def state(self) -> WishlistState:
        return self._state

    def _get(self) -> WishlistState:
        return self._state

    def _commit(self, state: WishlistState) -> None:
        self._state = state

    async def _load(self, owner_key: str) -> FrozenSet[str]:
        raise NotImplementedError

    def _replaced(
        self, state: WishlistState, owner_key: str, ids: FrozenSet[str]
    ) -> WishlistState:
        return replace(state, member_ids=ids)

    def contains(self, item_id: str) -> bool:
        return item_id in self._state.member_ids

    async def fetch(self, owner_key: str) -> bool:
        """
        Returns True when a fresh collection was applied. Gate rejections,
        failures and stale responses all return False.
        """
        if not self._gate.should_proceed(owner_key):
            logger.debug("%s: skipping duplicate fetch for %s.", self.name, owner_key)
            return False

        self._generation += 1
        generation = self._generation

        state = self._state
        if state.last_synced_user_id not in (None, owner_key):
            logger.info(
                "%s: owner changed %s -> %s; dropping cached collection.",
                self.name, state.last_synced_user_id, owner_key,
            )
            state = self._initial
        self._commit(replace(
            state, last_synced_user_id=owner_key, is_syncing=True, error=None
        ))
        logger.info("%s: fetching collection for %s.", self.name, owner_key)

        try:
            ids = await self._load(owner_key)
        except Exception as e:
            if generation != self._generation:
                self._gate.release(owner_key)
                logger.debug("%s: ignoring stale failure for %s: %s", self.name, owner_key, e)
                return False
            self._gate.mark_complete(owner_key)
            logger.error("%s: fetch failed for %s: %s", self.name, owner_key, e)
            self._commit(replace(self._state, is_syncing=False, error=str(e)))
            return False

        if generation != self._generation:
            self._gate.release(owner_key)
            logger.info("%s: discarding stale response for %s.", self.name, owner_key)
            return False

        self._gate.mark_complete(owner_key)
        added, removed = diff_ids(self._state.member_ids, ids)
        if added or removed:
            logger.debug(
                "%s: %s changed remotely (added=%s, removed=%s).",
                self.name, owner_key, added, removed,
            )
        self._commit(replace(
            self._replaced(self._state, owner_key, ids), is_syncing=False, error=None
        ))
        logger.info("%s: loaded %d items for %s.", self.name, len(ids), owner_key)
        return True

    async def refresh(self, owner_key: str) -> bool:
        """fetch() that is allowed to repeat the last completed owner."""
        self._gate.forget(owner_key)
        return await self.fetch(owner_key)

    def clear(self) -> None:
        self._generation += 1
        self._gate.reset()
        self._commit(self._initial)
        logger.debug("%s: cleared.", self.name)
