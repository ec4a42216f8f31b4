"""FastAPI router for the relay WebSocket endpoint and its status route.

Host apps build a hub, start it in their lifespan and include the router
returned by build_ws_router().
"""

import logging

from chat_relay.config.relay_config import DEFAULT_WS_PATH
from chat_relay.hub.broadcast_hub import BroadcastHub

logger = logging.getLogger(__name__)


def build_ws_router(hub: BroadcastHub, path: str = DEFAULT_WS_PATH):
    """Build the FastAPI APIRouter with the relay WebSocket and its status route.

    Both routes share ``path``: plain GET requests get a JSON status, WebSocket
    upgrades are bound to ``hub``.
    """
    from fastapi import APIRouter
    from starlette.websockets import WebSocket

    from chat_relay.api.session_handler import SessionLifecycleHandler

    router = APIRouter()

    @router.get(path)
    async def relay_status():
        return {
            "status": "running" if hub.running else "stopped",
            "sessions": hub.registry.active_count,
            "history": len(hub.history),
            "typing": hub.presence.typing_users(),
        }

    @router.websocket(path)
    async def relay_socket(ws: WebSocket):
        """WebSocket endpoint for relay clients."""
        logger.debug(f"[WS] Connection attempt from {ws.client}")
        await SessionLifecycleHandler(hub, ws).run()

    return router
