"""Broadcast hub — the single writer for history, presence and sessions.

Connections submit events into one queue. A single task applies them in
order and fans the results out into per-session outbound queues, so every
session observes broadcasts in the same relative order and no slow client
can hold up the loop.
"""
import asyncio
import itertools
import logging
import time
from typing import Callable, Optional
from uuid import uuid4

from starlette import status

from chat_relay.config.relay_config import RelayConfig
from chat_relay.hub.history_buffer import HistoryBuffer
from chat_relay.hub.hub_events import (
    ClearPresence, Connect, Disconnect, ExpirePresence, HubEvent, SendMessage, SetTyping,
)
from chat_relay.hub.presence_tracker import PresenceTracker
from chat_relay.hub.session_registry import Session, SessionRegistry
from chat_relay.relay_models import HistoryEvent, Message, MessageEvent, PresenceEvent
from chat_relay.relay_types import DuplicateSessionError, HubClosedError

logger = logging.getLogger(__name__)

_STOP = object()


class BroadcastHub:
    """Coordinates history, presence and fan-out for all connected sessions."""

    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RelayConfig()
        self.history = HistoryBuffer(self.config.history_limit)
        self.presence = PresenceTracker()
        self.registry = SessionRegistry()
        self._clock = clock
        self._sequence = itertools.count(1)
        self._events: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._accepting = False

    @property
    def running(self) -> bool:
        return self._accepting

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self) -> None:
        if self._task is not None:
            return
        self._events = asyncio.Queue(maxsize=self.config.inbound_queue_size)
        self._accepting = True
        self._task = asyncio.create_task(self._run(), name="broadcast-hub")
        if self.config.typing_ttl is not None:
            self._sweep_task = asyncio.create_task(self._sweep_presence(), name="presence-sweep")
        logger.info(f"[HUB] Started (history limit {self.config.history_limit})")

    async def stop(self) -> None:
        """Stop accepting events, finish the queued ones and close every session."""
        if self._task is None:
            return
        self._accepting = False
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None

        await self._events.put(_STOP)
        await self._task
        self._task = None

        # Submitters that were blocked on a full queue slipped in behind the stop marker
        while not self._events.empty():
            event = self._events.get_nowait()
            if isinstance(event, Connect) and not event.registered.done():
                event.registered.set_exception(HubClosedError("Hub stopped"))
            self._events.task_done()

        for session in self.registry.sessions():
            self.registry.unregister(session.session_id, close_code=status.WS_1001_GOING_AWAY)
        logger.info("[HUB] Stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        if self._events is not None:
            await self._events.join()

    # ── Submission ─────────────────────────────────────────────

    def new_session(self) -> Session:
        """Create an unregistered session configured from this hub's settings."""
        return Session(
            session_id=uuid4().hex,
            queue_size=self.config.outbound_queue_size,
            overflow_policy=self.config.overflow_policy,
            max_dropped=self.config.max_dropped,
        )

    async def submit(self, event: HubEvent) -> None:
        if not self._accepting:
            raise HubClosedError("Hub is not accepting events")
        await self._events.put(event)

    async def connect(self, session: Session) -> None:
        """Register a session and queue the history snapshot for it.

        :raises DuplicateSessionError: If the session id is already registered
        :raises HubClosedError: If the hub stops before the session is registered
        """
        registered = asyncio.get_running_loop().create_future()
        await self.submit(Connect(session, registered))
        await registered

    async def send_message(self, session_id: str, user: str, body: str) -> None:
        await self.submit(SendMessage(session_id, user, body))

    async def set_typing(self, session_id: str, user: str, is_typing: bool) -> None:
        await self.submit(SetTyping(session_id, user, is_typing))

    async def disconnect(self, session_id: str) -> None:
        await self.submit(Disconnect(session_id))

    async def clear_presence(self, user: str) -> None:
        await self.submit(ClearPresence(user))

    # ── Event loop ─────────────────────────────────────────────

    async def _run(self) -> None:
        while True:
            event = await self._events.get()
            try:
                if event is _STOP:
                    break
                self._process(event)
            except Exception as e:
                logger.error(f"[HUB] Failed to process {type(event).__name__}: {type(e).__name__}: {e}")
            finally:
                self._events.task_done()

    async def _sweep_presence(self) -> None:
        while True:
            await asyncio.sleep(self.config.typing_sweep_interval)
            await self.submit(ExpirePresence(self.config.typing_ttl))

    def _process(self, event: HubEvent) -> None:
        if isinstance(event, Connect):
            self._on_connect(event)
        elif isinstance(event, SendMessage):
            self._on_send_message(event)
        elif isinstance(event, SetTyping):
            self._on_set_typing(event)
        elif isinstance(event, Disconnect):
            self.registry.unregister(event.session_id)
        elif isinstance(event, ClearPresence):
            if self.presence.clear(event.user):
                self.registry.broadcast(PresenceEvent(user=event.user, is_typing=False).to_wire())
        elif isinstance(event, ExpirePresence):
            for user in self.presence.expire(event.ttl):
                self.registry.broadcast(PresenceEvent(user=user, is_typing=False).to_wire())
        else:
            logger.warning(f"[HUB] Ignoring unknown event {event!r}")

    def _on_connect(self, event: Connect) -> None:
        if event.registered.done():
            # Caller gave up (cancelled) before we got here
            return
        try:
            self.registry.register(event.session)
        except DuplicateSessionError as e:
            event.registered.set_exception(e)
            return
        event.session.deliver(HistoryEvent(messages=list(self.history.snapshot())).to_wire())
        event.registered.set_result(None)

    def _on_send_message(self, event: SendMessage) -> None:
        if self.registry.get(event.session_id) is None:
            logger.debug(f"[HUB] Dropping message from unknown session {event.session_id}")
            return
        body = event.body
        if not body.strip():
            logger.debug(f"[HUB] Dropping empty message from session {event.session_id}")
            return
        if len(body) > self.config.max_body_length:
            logger.debug(f"[HUB] Dropping oversized message ({len(body)} chars) from session {event.session_id}")
            return

        sent_at = int(self._clock() * 1000)
        message = Message(id=f"{sent_at}-{next(self._sequence)}", user=event.user, body=body, sent_at=sent_at)
        self.history.append(message)

        self.registry.broadcast(MessageEvent(message=message).to_wire())
        # A sent message ends the typing indicator
        if self.presence.clear(event.user):
            self.registry.broadcast(
                PresenceEvent(user=event.user, is_typing=False).to_wire(),
                predicate=lambda s: s.session_id != event.session_id,
            )

    def _on_set_typing(self, event: SetTyping) -> None:
        if self.registry.get(event.session_id) is None:
            logger.debug(f"[HUB] Dropping typing signal from unknown session {event.session_id}")
            return
        if not self.presence.set_typing(event.user, event.is_typing):
            return
        self.registry.broadcast(
            PresenceEvent(user=event.user, is_typing=event.is_typing).to_wire(),
            predicate=lambda s: s.session_id != event.session_id,
        )
