"""Bounded in-memory message history."""
import threading
from collections import deque

from chat_relay.config.relay_config import HISTORY_LIMIT
from chat_relay.relay_models import Message


class HistoryBuffer:
    """Most recent messages in arrival order, oldest evicted first.

    Appends and snapshots share one lock, so a snapshot is always a single
    contiguous window of the append sequence.
    """

    def __init__(self, capacity: int = HISTORY_LIMIT):
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._messages: deque[Message] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._messages.maxlen

    def append(self, message: Message) -> None:
        with self._lock:
            # deque(maxlen) drops the head when full
            self._messages.append(message)

    def snapshot(self) -> tuple[Message, ...]:
        """Return an immutable copy of the current contents."""
        with self._lock:
            return tuple(self._messages)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
