# core/wishlist.py
import os
from dataclasses import replace
from typing import Callable, FrozenSet, Optional

from backends.base import Query

from .collection import RemoteCollectionStore
from .errors import RemoteDataError
from .logger import get_logger
from .models import WishlistEntry, WishlistState
from .mutator import OptimisticMutator
from .notifier import Notifier

logger = get_logger(__name__)

WISHLIST_TABLE = os.getenv("WISHLIST_TABLE", "wishlist")


def with_membership(state: WishlistState, product_id: str, member: bool) -> WishlistState:
    """
    Set membership of product_id and move favorite_count by the same delta.
    A no-op when membership already matches.
    """
    if (product_id in state.member_ids) == member:
        return state
    if member:
        return replace(
            state,
            member_ids=state.member_ids | {product_id},
            favorite_count=state.favorite_count + 1,
        )
    return replace(
        state,
        member_ids=state.member_ids - {product_id},
        favorite_count=max(0, state.favorite_count - 1),
    )


class WishlistStore(RemoteCollectionStore):
    """
    The signed-in user's favorited product ids plus the denormalized favorite
    counter shown on their profile. Both live in one WishlistState snapshot,
    so they are always committed and rolled back together.

    on_count_change is called with the new counter whenever it moves
    (optimistic commit, rollback, fetch, refresh, owner switch, clear).
    """

    def __init__(
        self,
        remote,
        notifier: Notifier,
        on_count_change: Optional[Callable[[int], None]] = None,
    ):
        super().__init__("wishlist")
        self.remote = remote
        self.notifier = notifier
        self.on_count_change = on_count_change
        self._mutator = OptimisticMutator(self._get, self._commit, notifier, name="wishlist")

    def _commit(self, state: WishlistState) -> None:
        previous = self._state.favorite_count
        self._state = state
        if state.favorite_count != previous:
            self._publish_count()

    def _publish_count(self) -> None:
        if self.on_count_change:
            self.on_count_change(self._state.favorite_count)

    async def _load(self, owner_key: str) -> FrozenSet[str]:
        query = Query(WISHLIST_TABLE, columns="product_id").eq("user_id", owner_key)
        rows = await self.remote.select(query)
        if not isinstance(rows, list):
            raise RemoteDataError(f"wishlist select returned {type(rows).__name__}")
        return frozenset(WishlistEntry.from_row(r, owner_key).product_id for r in rows)

    def _replaced(self, state, owner_key, ids):
        return replace(state, member_ids=ids, favorite_count=len(ids))

    async def fetch_wishlist(self, user_id: str) -> bool:
        return await self.fetch(user_id)

    def is_in_wishlist(self, product_id: str) -> bool:
        return self.contains(product_id)

    async def toggle(self, product_id: str, user_id: Optional[str]) -> bool:
        """
        Flip membership of product_id for user_id.

        Returns True once the remote store confirmed the change, False when
        it was refused (no user, cache owned by someone else) or rolled back.
        """
        if not user_id:
            logger.warning("Wishlist toggle for %s refused: no signed-in user.", product_id)
            self.notifier.notify(
                "Sign in required", "Please sign in to save items to your wishlist."
            )
            return False

        owner = self._state.last_synced_user_id
        if owner is not None and owner != user_id:
            logger.error(
                "Wishlist toggle for %s refused: cache belongs to %s, not %s.",
                product_id, owner, user_id,
            )
            self.notifier.notify("Error", "Your wishlist is still loading. Please try again.")
            return False

        entry = WishlistEntry(user_id=user_id, product_id=product_id)
        return await self._mutator.mutate(
            product_id,
            apply=lambda s: with_membership(s, product_id, product_id not in s.member_ids),
            remote_call=lambda before: self._push(entry, product_id in before.member_ids),
            revert=lambda s, before: with_membership(
                s, product_id, product_id in before.member_ids
            ),
            error_message="Failed to update wishlist. Please try again.",
        )

    async def _push(self, entry: WishlistEntry, was_member: bool) -> None:
        if was_member:
            logger.info("Removing %s from wishlist of %s.", entry.product_id, entry.user_id)
            await self.remote.delete(WISHLIST_TABLE, entry.as_match())
        else:
            logger.info("Adding %s to wishlist of %s.", entry.product_id, entry.user_id)
            await self.remote.insert(WISHLIST_TABLE, entry.as_match())

    def clear_wishlist(self) -> None:
        self.clear()
