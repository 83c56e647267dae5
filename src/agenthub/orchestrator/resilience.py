"""Retry with exponential backoff for provider calls.

Only ``ProviderError``s marked recoverable are retried; anything else
propagates on the first failure.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..domain.exceptions import ErrorType, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 1,
    backoff_factor: float = 2.0,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: bool = True,
    **kwargs,
) -> T:
    """Call ``func`` until it succeeds or attempts run out.

    Args:
        func: Async function to call
        *args: Arguments to pass to func
        max_attempts: Maximum attempts, including the first (1 = no retry)
        backoff_factor: Delay multiplier between attempts
        initial_delay: Delay in seconds before the first retry
        max_delay: Maximum delay in seconds
        jitter: Randomize delays to avoid synchronized retries
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from func

    Example:
        reply = await retry_async(
            dispatcher.dispatch, agent, "Hello", max_attempts=3
        )
    """
    last_exception: Optional[ProviderError] = None
    delay = initial_delay
    attempts = max(1, max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await func(*args, **kwargs)

        except ProviderError as e:
            last_exception = e

            if not e.recoverable or attempt >= attempts:
                raise

            if e.error_type == ErrorType.RATE_LIMIT:
                delay = max(delay, initial_delay * backoff_factor)

            actual_delay = min(delay, max_delay)
            if jitter:
                actual_delay = actual_delay * (0.5 + random.random())

            logger.warning(
                f"Provider attempt {attempt}/{attempts} failed: {e.message}. "
                f"Retrying in {actual_delay:.1f}s"
            )
            await asyncio.sleep(actual_delay)
            delay = min(delay * backoff_factor, max_delay)

    if last_exception:
        raise last_exception
    raise RuntimeError("Retry logic error")
