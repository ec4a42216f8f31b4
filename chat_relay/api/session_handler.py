"""Per-connection glue between one WebSocket and the broadcast hub."""
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError
from starlette import status
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from chat_relay.hub.broadcast_hub import BroadcastHub
from chat_relay.relay_models import SendRequest, TypingRequest, parse_client_message
from chat_relay.relay_types import DuplicateSessionError, HubClosedError

logger = logging.getLogger(__name__)


class SessionLifecycleHandler:
    """Binds a WebSocket to the hub for the lifetime of the connection.

    Registers a fresh session on connect, forwards client requests as hub
    events, drains the session's outbound queue to the socket and cleans up
    the session and its typing state when either side ends.
    """

    def __init__(self, hub: BroadcastHub, websocket: WebSocket):
        self.hub = hub
        self.ws = websocket
        self.session = hub.new_session()

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def user(self) -> Optional[str]:
        return self.session.display_user

    async def run(self) -> None:
        await self.ws.accept()
        try:
            await self.hub.connect(self.session)
        except DuplicateSessionError as e:
            logger.error(f"[WS] {e}")
            await self._close(status.WS_1011_INTERNAL_ERROR)
            return
        except HubClosedError:
            logger.info(f"[WS] Hub closed, rejecting session {self.session_id}")
            await self._close(status.WS_1001_GOING_AWAY)
            return

        logger.info(f"[WS] Session {self.session_id} connected "
                    f"(active sessions: {self.hub.registry.active_count})")

        receiver = asyncio.create_task(self._receive_loop(), name=f"ws-receive-{self.session_id}")
        sender = asyncio.create_task(self._send_loop(), name=f"ws-send-{self.session_id}")
        try:
            done, _ = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            receiver.cancel()
            sender.cancel()
            results = await asyncio.gather(receiver, sender, return_exceptions=True)
            await self._leave()

        close_code = None
        for result in results:
            if isinstance(result, WebSocketDisconnect):
                logger.info(f"[WS] Session {self.session_id} disconnected (code {result.code})")
            elif isinstance(result, HubClosedError):
                logger.info(f"[WS] Hub closed during session {self.session_id}")
                close_code = status.WS_1001_GOING_AWAY
            elif isinstance(result, Exception):
                logger.error(f"[WS] Error in session {self.session_id}: {type(result).__name__}: {result}")
                close_code = status.WS_1011_INTERNAL_ERROR

        if sender in done and sender.exception() is None:
            # The hub closed the session: dropped as a slow consumer or shutting down
            close_code = self.session.close_code
        if close_code is not None:
            await self._close(close_code)

    async def _receive_loop(self) -> None:
        while True:
            message = await self.ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                logger.warning(f"[WS] Dropping empty frame from session {self.session_id}")
                continue
            try:
                request = parse_client_message(raw)
            except ValidationError as e:
                logger.warning(f"[WS] Dropping malformed message from session {self.session_id}: "
                               f"{e.error_count()} validation errors")
                continue
            await self._dispatch(request)

    async def _dispatch(self, request: SendRequest | TypingRequest) -> None:
        user = request.user.strip() or self._default_user()
        previous = self.session.display_user
        if previous is not None and user != previous:
            # Identity changed mid-connection; the old name must not stay "typing"
            await self.hub.clear_presence(previous)
        self.session.display_user = user

        if isinstance(request, SendRequest):
            await self.hub.send_message(self.session_id, user, request.body)
        elif isinstance(request, TypingRequest):
            await self.hub.set_typing(self.session_id, user, request.is_typing)

    async def _send_loop(self) -> None:
        while True:
            payload = await self.session.outbound.get()
            if payload is None:
                return
            await self.ws.send_text(payload)

    async def _leave(self) -> None:
        try:
            await self.hub.disconnect(self.session_id)
            if self.session.display_user is not None:
                await self.hub.clear_presence(self.session.display_user)
        except HubClosedError:
            logger.debug(f"[WS] Hub already stopped while leaving session {self.session_id}")

    async def _close(self, code: int) -> None:
        if self.ws.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self.ws.close(code=code)
        except RuntimeError as e:
            logger.debug(f"[WS] Close failed for session {self.session_id}: {e}")

    def _default_user(self) -> str:
        return f"User{self.session_id[:4]}"
