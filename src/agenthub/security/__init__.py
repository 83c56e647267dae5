"""Security components: rate limiting and WebSocket tickets."""

from .rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitExceededError,
    enforce_rate_limit,
    get_rate_limiter,
    init_rate_limiter,
)
from .ticket_auth import WebSocketTicket, WebSocketTicketAuth

__all__ = [
    "InMemoryRateLimiter",
    "RateLimitConfig",
    "RateLimitExceededError",
    "enforce_rate_limit",
    "get_rate_limiter",
    "init_rate_limiter",
    "WebSocketTicket",
    "WebSocketTicketAuth",
]
