# =============================================================================
# File: guildsync/infra/reliability/rate_limiter.py
# Description: Token bucket pacing outbound Discord API calls
# =============================================================================

import asyncio
import time
from typing import Any, Dict, Optional
import logging

from guildsync.config.reliability_config import RateLimiterConfig

logger = logging.getLogger("guildsync.rate_limiter")


class RateLimiter:
    """
    Process-local token bucket. discord.py already honours per-route
    buckets; this keeps bursts (setup wizard, category sync) below the
    global limit so they do not trip it in the first place.
    """

    def __init__(self, name: str = "default", config: Optional[RateLimiterConfig] = None):
        self.name = name
        self.config = config or RateLimiterConfig()
        self.capacity = self.config.capacity
        self.refill_rate = self.config.refill_rate
        self.tokens = float(self.capacity)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self._last_refill) * self.refill_rate)
        self._last_refill = now

    async def acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available, without waiting."""
        async with self._lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    async def wait_and_acquire(self, tokens: int = 1) -> None:
        start = time.monotonic()
        while not await self.acquire(tokens):
            async with self._lock:
                wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(max(wait_time, 0.01))

        waited = time.monotonic() - start
        if waited > 0.1:
            logger.info(f"rate_limit_wait for {self.name}, wait_time={waited:.3f}, tokens={tokens}")

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "available_tokens": self.tokens,
            "refill_rate": self.refill_rate,
        }
