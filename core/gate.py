# core/gate.py
from typing import Optional, Set

from .logger import get_logger

logger = get_logger(__name__)


class RequestGate:
    """
    Suppresses redundant remote calls for logically identical operations.

    A signature is refused while it is in flight, or when it equals the most
    recently completed signature. Flight status is tracked per signature, so
    two different signatures never block each other.
    """

    def __init__(self, name: str = "gate"):
        self.name = name
        self._in_flight: Set[str] = set()
        self._last_completed: Optional[str] = None

    def should_proceed(self, signature: str) -> bool:
        if signature in self._in_flight:
            logger.debug("%s: %r already in flight; skipping.", self.name, signature)
            return False
        if signature == self._last_completed:
            logger.debug("%s: %r matches last completed; skipping.", self.name, signature)
            return False
        self._in_flight.add(signature)
        return True

    def mark_complete(self, signature: str) -> None:
        self._in_flight.discard(signature)
        self._last_completed = signature

    def release(self, signature: str) -> None:
        """Drop in-flight status without recording the signature as completed."""
        self._in_flight.discard(signature)

    def forget(self, signature: str) -> None:
        """Allow signature to run again even though it was the last one completed."""
        if self._last_completed == signature:
            self._last_completed = None

    def is_in_flight(self, signature: str) -> bool:
        return signature in self._in_flight

    @property
    def last_completed(self) -> Optional[str]:
        return self._last_completed

    def reset(self) -> None:
        self._in_flight.clear()
        self._last_completed = None
