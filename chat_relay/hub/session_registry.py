"""Connected sessions and their outbound queues.

Session — one connected client with a bounded queue of serialized payloads
SessionRegistry — maps session_id → Session and fans payloads out to them
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from starlette import status

from chat_relay.relay_types import DuplicateSessionError, OverflowPolicy

logger = logging.getLogger(__name__)

DEFAULT_OUTBOUND_QUEUE_SIZE = 256

SessionPredicate = Callable[["Session"], bool]


@dataclass(eq=False)
class Session:
    """A connected client. The queue holds JSON text frames; ``None`` marks the end."""
    session_id: str
    queue_size: int = DEFAULT_OUTBOUND_QUEUE_SIZE
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    max_dropped: Optional[int] = None
    #: Last user name the client sent under, kept by its lifecycle handler
    display_user: Optional[str] = None
    dropped: int = 0
    closed: bool = False
    close_code: int = status.WS_1000_NORMAL_CLOSURE
    outbound: asyncio.Queue = field(init=False, repr=False)

    def __post_init__(self):
        self.outbound = asyncio.Queue(maxsize=self.queue_size)

    def deliver(self, payload: str) -> bool:
        """Enqueue a payload without waiting.

        :return: False if the session is closed or has to be dropped as a slow consumer
        """
        if self.closed:
            return False
        try:
            self.outbound.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            pass

        if self.overflow_policy == OverflowPolicy.DROP_SESSION:
            return False

        self.outbound.get_nowait()
        self.dropped += 1
        if self.max_dropped is not None and self.dropped > self.max_dropped:
            return False
        self.outbound.put_nowait(payload)
        logger.debug(f"[REGISTRY] Session {self.session_id} queue full, dropped oldest payload ({self.dropped} total)")
        return True

    def close(self, code: int = status.WS_1000_NORMAL_CLOSURE) -> None:
        """Stop accepting payloads. Already queued payloads stay ahead of the end marker."""
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        if self.outbound.full():
            self.outbound.get_nowait()
            self.dropped += 1
        self.outbound.put_nowait(None)


class SessionRegistry:
    """Maps session_id → Session. Mutated only from the hub's event loop task."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def register(self, session: Session) -> None:
        if session.session_id in self._sessions:
            raise DuplicateSessionError(session.session_id)
        self._sessions[session.session_id] = session
        logger.info(f"[REGISTRY] Registered session {session.session_id}")

    def unregister(self, session_id: str, close_code: int = status.WS_1000_NORMAL_CLOSURE) -> Optional[Session]:
        session = self._sessions.pop(session_id, None)
        if session:
            session.close(close_code)
            logger.info(f"[REGISTRY] Removed session {session_id}")
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def broadcast(self, payload: str, predicate: Optional[SessionPredicate] = None) -> int:
        """Deliver a payload to every registered session matching predicate.

        Sessions that cannot take the payload are dropped; the remaining
        recipients are unaffected.

        :return: Number of sessions that accepted the payload
        """
        delivered = 0
        overflowed = []
        for session in list(self._sessions.values()):
            if predicate is not None and not predicate(session):
                continue
            if session.deliver(payload):
                delivered += 1
            else:
                overflowed.append(session.session_id)
        for session_id in overflowed:
            logger.warning(f"[REGISTRY] Dropping slow session {session_id}")
            self.unregister(session_id, close_code=status.WS_1013_TRY_AGAIN_LATER)
        return delivered

    @property
    def active_count(self) -> int:
        return len(self._sessions)
