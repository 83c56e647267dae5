"""
Per-client request quota.

Each client address gets a fixed window (aligned to the epoch) and a
counter. Requests past the quota are rejected with 429 and a Retry-After
equal to the time left in the window. State lives in process memory.

Environment Variables:
- RATE_LIMIT_REQUESTS: Requests per window (default: 100)
- RATE_LIMIT_WINDOW_SECONDS: Window size in seconds (default: 900)
- RATE_LIMIT_ENABLED: Enable/disable (default: true)
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, Response, status
from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)

# Seconds between sweeps of expired windows
PURGE_INTERVAL = 300


class RateLimitExceededError(HTTPException):
    """429 for a client that used up its window."""

    def __init__(self, client_key: str, limit: int, window_seconds: int, retry_after: int):
        self.client_key = client_key
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests: limit is {limit} per {window_seconds}s",
            headers={"Retry-After": str(retry_after)},
        )


@dataclass
class RateLimitConfig:
    requests_per_window: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))
    enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


@dataclass
class _Window:
    index: int
    expires_at: float
    count: int = 0


class InMemoryRateLimiter:
    """Fixed-window limiter keyed by client.

    Usage:
        limiter = InMemoryRateLimiter(RateLimitConfig(requests_per_window=10))
        await limiter.check_rate_limit(client_key_for(request))
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self._counters: dict[str, _Window] = {}
        self._lock = asyncio.Lock()
        self._last_cleanup = time.time()

    def _window_for(self, client_key: str, now: float) -> _Window:
        size = self.config.window_seconds
        index = int(now // size)
        window = self._counters.get(client_key)
        if window is None or window.index != index:
            window = _Window(index=index, expires_at=(index + 1) * size)
            self._counters[client_key] = window
        return window

    async def _purge_expired(self) -> None:
        now = time.time()
        if now - self._last_cleanup < PURGE_INTERVAL:
            return

        async with self._lock:
            expired = [key for key, window in self._counters.items() if window.expires_at < now]
            for key in expired:
                del self._counters[key]
            self._last_cleanup = now

        if expired:
            logger.debug(f"Dropped {len(expired)} expired rate limit windows")

    async def check_rate_limit(self, client_key: str) -> None:
        """Count a request against the client's current window.

        Rejected requests are not counted.

        Raises:
            RateLimitExceededError: The window is already full
        """
        if not self.config.enabled:
            return

        await self._purge_expired()

        now = time.time()
        async with self._lock:
            window = self._window_for(client_key, now)
            if window.count >= self.config.requests_per_window:
                logger.warning(f"Rate limit hit by {client_key} ({window.count} requests)")
                raise RateLimitExceededError(
                    client_key=client_key,
                    limit=self.config.requests_per_window,
                    window_seconds=self.config.window_seconds,
                    retry_after=max(1, int(window.expires_at - now)),
                )
            window.count += 1

    async def get_rate_limit_info(self, client_key: str) -> dict:
        if not self.config.enabled:
            return {"client": client_key, "enabled": False}

        now = time.time()
        async with self._lock:
            window = self._counters.get(client_key)
            current = int(now // self.config.window_seconds)
            used = window.count if window and window.index == current else 0

        return {
            "client": client_key,
            "current_requests": used,
            "limit": self.config.requests_per_window,
            "window_seconds": self.config.window_seconds,
            "remaining": max(0, self.config.requests_per_window - used),
        }

    def reset(self) -> None:
        self._counters.clear()
        self._last_cleanup = time.time()


_default_rate_limiter: Optional[InMemoryRateLimiter] = None


def init_rate_limiter(config: Optional[RateLimitConfig] = None) -> InMemoryRateLimiter:
    """Install a fresh process-wide limiter."""
    global _default_rate_limiter
    _default_rate_limiter = InMemoryRateLimiter(config=config)
    return _default_rate_limiter


def get_rate_limiter() -> InMemoryRateLimiter:
    global _default_rate_limiter
    if _default_rate_limiter is None:
        _default_rate_limiter = InMemoryRateLimiter()
    return _default_rate_limiter


def client_key_for(connection: HTTPConnection) -> str:
    """Quota key for a request or WebSocket: the peer address."""
    return connection.client.host if connection.client else "unknown"


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """Router dependency: 429 once the caller's window is full.

    Allowed responses carry the remaining quota in X-RateLimit-* headers.
    """
    limiter = get_rate_limiter()
    client_key = client_key_for(request)
    await limiter.check_rate_limit(client_key)

    info = await limiter.get_rate_limit_info(client_key)
    if info.get("enabled", True):
        response.headers["X-RateLimit-Limit"] = str(info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
