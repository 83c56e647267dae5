"""HTTP and WebSocket surface of the chat service."""

from .errors import register_exception_handlers
from .router import (
    ChatDependencies,
    WebSocketConnection,
    create_chat_dependencies,
    get_dependencies,
    realtime_router,
    router,
)

__all__ = [
    "ChatDependencies",
    "WebSocketConnection",
    "create_chat_dependencies",
    "get_dependencies",
    "realtime_router",
    "register_exception_handlers",
    "router",
]
