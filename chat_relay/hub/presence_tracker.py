"""Typing presence with transition de-duplication."""
import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Tracks which users are currently typing.

    Only users whose latest signal was ``typing=true`` have an entry; stopping,
    clearing or expiring removes it. Each entry remembers when it was last
    refreshed so stale signals can be expired.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._typing: dict[str, float] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def set_typing(self, user: str, is_typing: bool) -> bool:
        """Set or clear a user's typing state.

        :return: True if the visible state changed, False for a repeat of the current state
        """
        with self._lock:
            if is_typing:
                changed = user not in self._typing
                self._typing[user] = self._clock()
                return changed
            return self._typing.pop(user, None) is not None

    def clear(self, user: str) -> bool:
        """Remove a user's entry unconditionally. Returns whether one existed."""
        with self._lock:
            return self._typing.pop(user, None) is not None

    def expire(self, ttl: float) -> list[str]:
        """Remove and return users whose last typing signal is older than ttl seconds."""
        now = self._clock()
        with self._lock:
            expired = [user for user, since in self._typing.items() if now - since > ttl]
            for user in expired:
                del self._typing[user]
        if expired:
            logger.debug(f"[PRESENCE] Expired typing state for {len(expired)} users")
        return expired

    def is_typing(self, user: str) -> bool:
        with self._lock:
            return user in self._typing

    def typing_users(self) -> list[str]:
        with self._lock:
            return list(self._typing)

    def __len__(self) -> int:
        with self._lock:
            return len(self._typing)
