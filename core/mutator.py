# core/mutator.py
import asyncio
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from .logger import get_logger
from .notifier import Notifier

logger = get_logger(__name__)

S = TypeVar("S")

DEFAULT_ERROR_TITLE = "Error"
DEFAULT_ERROR_MESSAGE = "Something went wrong. Please try again."


class OptimisticMutator(Generic[S]):
    """
    Commits a local change immediately, then confirms it remotely.

    State is reached only through the read/write callables handed in by the
    owning store, so the mutator never keeps its own copy. Mutations that share
    a key run one after another: the second one snapshots state only after the
    first has resolved (or been rolled back). An uncontended mutation commits
    without yielding to the event loop.
    """

    def __init__(
        self,
        read: Callable[[], S],
        write: Callable[[S], None],
        notifier: Notifier,
        name: str = "mutator",
    ):
        self._read = read
        self._write = write
        self._notifier = notifier
        self.name = name
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def pending(self, key: str) -> int:
        """Number of mutations queued or running for key."""
        return self._users.get(key, 0)

    async def mutate(
        self,
        key: str,
        apply: Callable[[S], S],
        remote_call: Callable[[S], Awaitable[object]],
        revert: Optional[Callable[[S, S], S]] = None,
        error_title: str = DEFAULT_ERROR_TITLE,
        error_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> bool:
        """
        Returns True when the remote call succeeded, False when it failed and
        the local change was rolled back.

        remote_call and revert both receive the pre-mutation snapshot. On
        failure, revert (when given) maps the state as it is at failure time
        back, which keeps changes made to other keys in the meantime. Without
        revert the pre-mutation snapshot is restored. A cancelled remote_call
        is rolled back the same way (without a notification) and the
        cancellation propagates.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                before = self._read()
                self._write(apply(before))
                try:
                    await remote_call(before)
                except asyncio.CancelledError:
                    logger.warning("%s: remote mutation for %s cancelled; rolling back.", self.name, key)
                    self._roll_back(before, revert)
                    raise
                except Exception as e:
                    logger.error("%s: remote mutation for %s failed: %s", self.name, key, e)
                    self._roll_back(before, revert)
                    self._notifier.notify(error_title, error_message)
                    return False
                logger.debug("%s: remote mutation for %s confirmed.", self.name, key)
                return True
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def _roll_back(self, before: S, revert: Optional[Callable[[S, S], S]]) -> None:
        self._write(revert(self._read(), before) if revert else before)
