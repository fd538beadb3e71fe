# =============================================================================
# File: guildsync/infra/persistence/redis_client.py
# =============================================================================
# Async Redis client for the sync worker: global singleton, circuit breaker
# accounting and the handful of helpers the worker needs (publish, lists).
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, AsyncIterator, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from guildsync.config.redis_config import RedisConfig, get_redis_config
from guildsync.config.reliability_config import ReliabilityConfigs
from guildsync.infra.reliability.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    get_circuit_breaker,
)
from guildsync.infra.reliability.retry import retry_async

log = logging.getLogger("guildsync.infra.redis_client")

_MAIN_REDIS_CLIENT: Optional[redis.Redis] = None
_CLIENT_INIT_LOCK = asyncio.Lock()


def get_global_circuit_breaker() -> CircuitBreaker:
    return get_circuit_breaker("redis_global", ReliabilityConfigs.redis_circuit_breaker("global"))


def build_redis_client(config: RedisConfig) -> redis.Redis:
    return redis.from_url(config.redis_url, **config.get_connection_kwargs())


async def init_global_client(config: Optional[RedisConfig] = None) -> redis.Redis:
    """Idempotent global singleton init, PING tested."""
    global _MAIN_REDIS_CLIENT

    if _MAIN_REDIS_CLIENT is not None:
        try:
            await _MAIN_REDIS_CLIENT.ping()
            return _MAIN_REDIS_CLIENT
        except (RedisError, OSError):
            await close_global_client()

    async with _CLIENT_INIT_LOCK:
        if _MAIN_REDIS_CLIENT is None:
            config = config or get_redis_config()
            circuit_breaker = get_global_circuit_breaker()
            client = build_redis_client(config)

            try:
                await retry_async(client.ping, retry_config=ReliabilityConfigs.redis_retry(),
                                  context="Redis init ping")
            except Exception as e:
                await circuit_breaker.record_failure(str(e))
                log.error(f"Failed to initialize Redis client: {e}")
                await client.aclose()
                raise

            await circuit_breaker.record_success()
            _MAIN_REDIS_CLIENT = client
            log.info("Global Redis client initialized and ping OK.")

    return _MAIN_REDIS_CLIENT


async def close_global_client() -> None:
    global _MAIN_REDIS_CLIENT
    if _MAIN_REDIS_CLIENT:
        try:
            await _MAIN_REDIS_CLIENT.aclose()
            log.info("Global Redis client closed.")
        except (RedisError, OSError) as e:
            log.warning(f"Error closing global Redis client: {e}")
    _MAIN_REDIS_CLIENT = None


def get_global_client() -> redis.Redis:
    if _MAIN_REDIS_CLIENT is None:
        raise RuntimeError("Redis client not initialized. Call init_global_client() first.")
    return _MAIN_REDIS_CLIENT


@asynccontextmanager
async def redis_operation(operation_name: str, r: Optional[redis.Redis] = None) -> AsyncIterator[redis.Redis]:
    """Context manager for Redis operations with circuit breaker accounting. Retry is handled by callers."""
    r = r or get_global_client()
    circuit_breaker = get_global_circuit_breaker()

    if not circuit_breaker.can_execute():
        log.warning(f"Circuit breaker preventing {operation_name}.")
        raise CircuitBreakerOpenError(f"Circuit breaker is open for Redis operations ({operation_name})")

    try:
        yield r
    except (RedisError, OSError) as e:
        await circuit_breaker.record_failure(str(e))
        log.warning(f"Redis operation '{operation_name}' failed: {e}")
        raise
    else:
        await circuit_breaker.record_success()


# -----------------------------------------------------------------------------
# Pub/Sub
# -----------------------------------------------------------------------------
async def publish(channel: str, message: Union[Dict[str, Any], str], r: Optional[redis.Redis] = None) -> int:
    """Publish a message; dicts are JSON encoded. Returns the receiver count, 0 on failure."""
    r = r or get_global_client()
    payload = json.dumps(message, ensure_ascii=False) if isinstance(message, dict) else message

    async def _publish_operation():
        async with redis_operation(f"PUBLISH {channel}", r):
            return await r.publish(channel, payload)

    try:
        return await retry_async(_publish_operation, retry_config=ReliabilityConfigs.redis_retry(),
                                 context=f"Redis PUBLISH {channel}")
    except (RedisError, OSError, CircuitBreakerOpenError) as e:
        log.warning(f"Redis PUBLISH failed on '{channel}': {e}")
        return 0


# -----------------------------------------------------------------------------
# Lists
# -----------------------------------------------------------------------------
async def push_capped(key: str, value: str, max_entries: int, ttl_seconds: int,
                      r: Optional[redis.Redis] = None) -> None:
    """LPUSH + LTRIM + EXPIRE in one pipeline."""
    r = r or get_global_client()

    async def _push():
        async with redis_operation(f"LPUSH {key}", r):
            pipe = r.pipeline(transaction=False)
            pipe.lpush(key, value)
            pipe.ltrim(key, 0, max_entries - 1)
            pipe.expire(key, ttl_seconds)
            await pipe.execute()

    await retry_async(_push, retry_config=ReliabilityConfigs.redis_retry(), context=f"Redis LPUSH {key}")


async def lrange(key: str, start: int = 0, end: int = -1, r: Optional[redis.Redis] = None) -> List[str]:
    r = r or get_global_client()
    async with redis_operation(f"LRANGE {key}", r):
        return await r.lrange(key, start, end)


async def lrem(key: str, value: str, count: int = 1, r: Optional[redis.Redis] = None) -> int:
    r = r or get_global_client()
    async with redis_operation(f"LREM {key}", r):
        return await r.lrem(key, count, value)


async def health_check(r: Optional[redis.Redis] = None) -> Dict[str, Any]:
    r = r or get_global_client()
    try:
        await r.ping()
        return {"healthy": True, "circuit_breaker": get_global_circuit_breaker().get_state_sync()}
    except (RedisError, OSError) as e:
        return {"healthy": False, "error": str(e), "circuit_breaker": get_global_circuit_breaker().get_state_sync()}
