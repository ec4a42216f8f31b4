"""WebSocket API for relay clients.

Provides SessionLifecycleHandler, which binds one connection to the hub.
The endpoint itself lives in chat_relay.server.build_ws_router().
"""

from .session_handler import SessionLifecycleHandler

__all__ = ["SessionLifecycleHandler"]
