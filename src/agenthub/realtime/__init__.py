"""Real-time gateway: rooms and fan-out over persistent connections."""

from .gateway import (
    EVENT_AI_RESPONSE,
    EVENT_ERROR,
    EVENT_JOIN,
    EVENT_LEAVE,
    EVENT_PING,
    EVENT_PONG,
    EVENT_SEND,
    EVENT_USER_MESSAGE,
    Connection,
    RealtimeGateway,
    error_payload,
)

__all__ = [
    "Connection",
    "RealtimeGateway",
    "error_payload",
    "EVENT_JOIN",
    "EVENT_LEAVE",
    "EVENT_SEND",
    "EVENT_PING",
    "EVENT_USER_MESSAGE",
    "EVENT_AI_RESPONSE",
    "EVENT_ERROR",
    "EVENT_PONG",
]
