"""Resilience patterns for external API calls."""
import asyncio
import logging
import random

import httpx

logger = logging.getLogger(__name__)

# A rate-limited provider is skipped, never retried
RETRYABLE_STATUS_CODES = frozenset({502, 503})


async def retry_with_backoff(coro_func, max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 10.0):
    """
    Await `coro_func()` up to `max_retries` times.
    Only upstream gateway errors (502/503) are retried, with exponential backoff
    and jitter; anything else is raised on the first attempt.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return await coro_func()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code not in RETRYABLE_STATUS_CODES or attempt == max_retries:
                raise
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            delay += random.uniform(0, delay * 0.5)
            logger.warning(f"Retry {attempt}/{max_retries} after HTTP {status_code}, waiting {delay:.1f}s")
            await asyncio.sleep(delay)


async def call_with_timeout(coro_func, *args, timeout: float, **kwargs):
    """
    Run an async call under a hard deadline.
    On expiry the in-flight call is cancelled and asyncio.TimeoutError propagates.
    """
    try:
        return await asyncio.wait_for(coro_func(*args, **kwargs), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{getattr(coro_func, '__qualname__', 'call')} timed out after {timeout:.0f}s")
        raise
