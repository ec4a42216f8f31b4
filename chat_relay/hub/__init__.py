from .history_buffer import HistoryBuffer
from .presence_tracker import PresenceTracker
from .session_registry import Session, SessionRegistry
from .hub_events import Connect, SendMessage, SetTyping, Disconnect, ClearPresence, ExpirePresence
from .broadcast_hub import BroadcastHub

__all__ = [
    'HistoryBuffer',
    'PresenceTracker',
    'Session',
    'SessionRegistry',
    'Connect',
    'SendMessage',
    'SetTyping',
    'Disconnect',
    'ClearPresence',
    'ExpirePresence',
    'BroadcastHub',
]
