# =============================================================================
# File: guildsync/infra/reliability/retry.py
# Description: Retry with exponential backoff and jitter for connection
#              setup and Redis/PostgreSQL calls
# =============================================================================

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar
import logging

from guildsync.config.reliability_config import RetryConfig

logger = logging.getLogger("guildsync.retry")

T = TypeVar('T')


def _full_jitter(delay: float) -> float:
    return random.uniform(0, delay)


def _equal_jitter(delay: float) -> float:
    half = delay / 2
    return half + random.uniform(0, half)


JITTER_STRATEGIES = {
    "full": _full_jitter,
    "equal": _equal_jitter,
}


def compute_delay_ms(attempt: int, retry_config: RetryConfig) -> float:
    """Backoff before the retry that follows ``attempt`` (1-based)."""
    delay = min(
        retry_config.initial_delay_ms * (retry_config.backoff_factor ** (attempt - 1)),
        retry_config.max_delay_ms,
    )
    if retry_config.jitter:
        delay = JITTER_STRATEGIES.get(retry_config.jitter_type, _full_jitter)(delay)
    return delay


async def retry_async(
        func: Callable[..., Awaitable[T]],
        *args,
        retry_config: Optional[RetryConfig] = None,
        context: str = "operation",
        **kwargs
) -> T:
    """Await ``func`` until it succeeds or the attempts run out.

    Errors marked with ``mark_permanent`` and errors rejected by
    ``retry_config.retry_condition`` are raised immediately.
    """
    retry_config = retry_config or RetryConfig()

    for attempt in range(1, retry_config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if is_permanent(e):
                raise
            if retry_config.retry_condition and not retry_config.retry_condition(e):
                logger.warning(f"Not retrying {context} after attempt {attempt}: {e}")
                raise
            if attempt >= retry_config.max_attempts:
                logger.warning(f"Retry exhausted for {context} after {attempt} attempts. Last error: {e}")
                raise

            delay_seconds = compute_delay_ms(attempt, retry_config) / 1000
            logger.info(
                f"Retry {attempt}/{retry_config.max_attempts} for {context} after error: {e}. "
                f"Waiting {delay_seconds:.2f}s"
            )
            await asyncio.sleep(delay_seconds)

    raise RuntimeError(f"retry_async for {context} called with max_attempts < 1")


def mark_permanent(error: Exception) -> Exception:
    """Flag an exception so retry_async re-raises it without retrying"""
    error.__permanent__ = True
    return error


def is_permanent(error: Exception) -> bool:
    return getattr(error, '__permanent__', False)
