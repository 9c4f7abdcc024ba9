# core/notifier.py
import datetime
from dataclasses import dataclass
from typing import List

import pytz

from .logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    ts: str


class Notifier:
    """
    Collects user-facing notifications (failed mutations, sign-in prompts).
    The UI layer polls pending() or drain() and renders them as alerts.
    """

    def __init__(self):
        self._pending: List[Notification] = []

    def notify(self, title: str, message: str) -> Notification:
        note = Notification(
            title=title,
            message=message,
            ts=datetime.datetime.now(tz=pytz.UTC).isoformat(),
        )
        self._pending.append(note)
        logger.warning("Notification: %s: %s", title, message)
        return note

    def pending(self) -> List[Notification]:
        return list(self._pending)

    def drain(self) -> List[Notification]:
        out, self._pending = self._pending, []
        return out
