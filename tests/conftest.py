"""Test configuration and fixtures."""
import asyncio
import json

import pytest_asyncio
from starlette.websockets import WebSocketState

from chat_relay.config.relay_config import RelayConfig
from chat_relay.hub.broadcast_hub import BroadcastHub
from chat_relay.hub.session_registry import Session


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket.

    Frames pushed with ``push()`` come back from ``receive()`` as ASGI messages;
    frames the server sends are decoded and collected in ``outbox``. ``stall()`` blocks
    the server's sends until ``resume()``.
    """

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.client_state = WebSocketState.CONNECTING
        self.close_code = None
        self._send_gate = asyncio.Event()
        self._send_gate.set()

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED

    async def receive(self) -> dict:
        frame = await self.incoming.get()
        if frame is None:
            self.client_state = WebSocketState.DISCONNECTED
            return {"type": "websocket.disconnect", "code": 1000}
        if isinstance(frame, bytes):
            return {"type": "websocket.receive", "bytes": frame}
        return {"type": "websocket.receive", "text": frame}

    async def send_text(self, data: str) -> None:
        await self._send_gate.wait()
        self.outbox.put_nowait(json.loads(data))

    async def close(self, code: int = 1000, reason=None) -> None:
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED

    # ── Test helpers ──

    def push(self, payload: dict) -> None:
        self.incoming.put_nowait(json.dumps(payload))

    def push_raw(self, frame: str) -> None:
        self.incoming.put_nowait(frame)

    def push_bytes(self, frame: bytes) -> None:
        self.incoming.put_nowait(frame)

    def disconnect(self) -> None:
        self.incoming.put_nowait(None)

    def stall(self) -> None:
        self._send_gate.clear()

    def resume(self) -> None:
        self._send_gate.set()

    async def next_event(self, timeout: float = 2.0) -> dict:
        return await asyncio.wait_for(self.outbox.get(), timeout)


def drain_outbound(session: Session) -> list:
    """Decode and remove everything queued for a session (None marks a closed queue)."""
    payloads = []
    while not session.outbound.empty():
        payload = session.outbound.get_nowait()
        payloads.append(None if payload is None else json.loads(payload))
    return payloads


@pytest_asyncio.fixture
async def hub():
    """A running hub with default settings."""
    hub = BroadcastHub(RelayConfig())
    await hub.start()
    try:
        yield hub
    finally:
        await hub.stop()
