"""chat-relay — realtime multi-user message relay."""

from chat_relay.relay_models import (
    Message, SendRequest, TypingRequest, HistoryEvent, MessageEvent, PresenceEvent, parse_client_message,
)
from chat_relay.relay_types import OverflowPolicy, DuplicateSessionError, HubClosedError
from chat_relay.config import RelayConfig
from chat_relay.hub import BroadcastHub, HistoryBuffer, PresenceTracker, Session, SessionRegistry
from chat_relay.api import SessionLifecycleHandler

__all__ = [
    "Message",
    "SendRequest",
    "TypingRequest",
    "HistoryEvent",
    "MessageEvent",
    "PresenceEvent",
    "parse_client_message",
    "OverflowPolicy",
    "DuplicateSessionError",
    "HubClosedError",
    "RelayConfig",
    "BroadcastHub",
    "HistoryBuffer",
    "PresenceTracker",
    "Session",
    "SessionRegistry",
    "SessionLifecycleHandler",
    "create_app",
]


def __getattr__(name: str):
    if name == "create_app":
        from chat_relay.standalone import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
