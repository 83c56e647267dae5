"""
Tests for per-client fixed-window rate limiting.

Tests cover:
    - Limits, separation between clients, reset and disable
    - Retry-After reporting
    - Concurrent requests never exceeding the quota
    - Purging expired windows
"""
import asyncio
import time
from types import SimpleNamespace

import pytest

from agenthub.security.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitExceededError,
    client_key_for,
    get_rate_limiter,
    init_rate_limiter,
)


@pytest.fixture
def config():
    """Small limits for fast testing."""
    return RateLimitConfig(requests_per_window=5, window_seconds=60, enabled=True)


@pytest.fixture
def limiter(config):
    return InMemoryRateLimiter(config=config)


class TestInMemoryRateLimiter:
    """Tests for the fixed-window limiter."""

    def test_explicit_config(self):
        config = RateLimitConfig(requests_per_window=100, window_seconds=900)
        assert config.requests_per_window == 100
        assert config.window_seconds == 900

    @pytest.mark.asyncio
    async def test_allows_requests_within_limit(self, limiter):
        for _ in range(5):
            await limiter.check_rate_limit("203.0.113.7")

        info = await limiter.get_rate_limit_info("203.0.113.7")
        assert info["current_requests"] == 5
        assert info["remaining"] == 0

    @pytest.mark.asyncio
    async def test_rejects_requests_over_limit(self, limiter):
        for _ in range(5):
            await limiter.check_rate_limit("203.0.113.7")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.check_rate_limit("203.0.113.7")

        error = exc_info.value
        assert error.client_key == "203.0.113.7"
        assert error.limit == 5
        assert error.window_seconds == 60
        assert error.status_code == 429
        assert 1 <= error.retry_after <= 60
        assert error.headers["Retry-After"] == str(error.retry_after)

    @pytest.mark.asyncio
    async def test_rejected_requests_are_not_counted(self, limiter):
        for _ in range(5):
            await limiter.check_rate_limit("client")
        for _ in range(3):
            with pytest.raises(RateLimitExceededError):
                await limiter.check_rate_limit("client")

        info = await limiter.get_rate_limit_info("client")
        assert info["current_requests"] == 5

    @pytest.mark.asyncio
    async def test_clients_have_separate_limits(self, limiter):
        for _ in range(5):
            await limiter.check_rate_limit("client-1")

        with pytest.raises(RateLimitExceededError):
            await limiter.check_rate_limit("client-1")

        await limiter.check_rate_limit("client-2")
        info = await limiter.get_rate_limit_info("client-2")
        assert info["current_requests"] == 1

    @pytest.mark.asyncio
    async def test_reset_clears_all_counters(self, limiter):
        await limiter.check_rate_limit("client-1")
        await limiter.check_rate_limit("client-2")

        limiter.reset()

        assert (await limiter.get_rate_limit_info("client-1"))["current_requests"] == 0
        assert (await limiter.get_rate_limit_info("client-2"))["current_requests"] == 0

    @pytest.mark.asyncio
    async def test_disabled_limiter_allows_all_requests(self, config):
        config.enabled = False
        limiter = InMemoryRateLimiter(config=config)

        for _ in range(20):
            await limiter.check_rate_limit("client")

        info = await limiter.get_rate_limit_info("client")
        assert info == {"client": "client", "enabled": False}

    @pytest.mark.asyncio
    async def test_concurrent_requests_respect_limit(self, limiter):
        """Exactly the quota succeeds when requests race."""
        results = await asyncio.gather(
            *[limiter.check_rate_limit("client") for _ in range(20)],
            return_exceptions=True,
        )

        successes = [r for r in results if r is None]
        failures = [r for r in results if isinstance(r, RateLimitExceededError)]
        assert len(successes) == 5
        assert len(failures) == 15

    @pytest.mark.asyncio
    async def test_purge_drops_expired_windows(self, limiter):
        await limiter.check_rate_limit("client")
        limiter._counters["client"].expires_at = time.time() - 1
        limiter._last_cleanup = 0

        await limiter._purge_expired()

        assert "client" not in limiter._counters


class TestModuleDefaults:
    """Tests for the shared limiter and key helper."""

    def test_init_replaces_default(self, config):
        limiter = init_rate_limiter(config)
        assert get_rate_limiter() is limiter
        assert get_rate_limiter().config.requests_per_window == 5

    def test_client_key_uses_remote_host(self):
        connection = SimpleNamespace(client=SimpleNamespace(host="198.51.100.4", port=5555))
        assert client_key_for(connection) == "198.51.100.4"

    def test_client_key_without_client(self):
        assert client_key_for(SimpleNamespace(client=None)) == "unknown"
