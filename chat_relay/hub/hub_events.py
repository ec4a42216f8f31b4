"""Events processed by the broadcast hub, in the order they are queued."""
import asyncio
from dataclasses import dataclass, field

from chat_relay.hub.session_registry import Session


@dataclass(frozen=True)
class Connect:
    session: Session
    registered: asyncio.Future = field(repr=False)
    """Resolved once the session is registered and its history is queued."""


@dataclass(frozen=True)
class SendMessage:
    session_id: str
    user: str
    body: str


@dataclass(frozen=True)
class SetTyping:
    session_id: str
    user: str
    is_typing: bool


@dataclass(frozen=True)
class Disconnect:
    session_id: str


@dataclass(frozen=True)
class ClearPresence:
    user: str


@dataclass(frozen=True)
class ExpirePresence:
    ttl: float


HubEvent = Connect | SendMessage | SetTyping | Disconnect | ClearPresence | ExpirePresence
