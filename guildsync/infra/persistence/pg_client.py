# =============================================================================
# File: guildsync/infra/persistence/pg_client.py
# =============================================================================
# AsyncPG pool helper guarded by a circuit breaker and retry_async.
# A single pool serves both the correlation tables and the web-app reads.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import time
from contextlib import asynccontextmanager
from typing import Optional, Any, List, AsyncIterator

import asyncpg

from guildsync.config.pg_client_config import get_postgres_config, PostgresConfig
from guildsync.config.reliability_config import ReliabilityConfigs
from guildsync.infra.reliability.circuit_breaker import CircuitBreaker, get_circuit_breaker
from guildsync.infra.reliability.retry import retry_async

log = logging.getLogger("guildsync.infra.pg_client")

DEFAULT_SCHEMA_FILE = pathlib.Path(__file__).resolve().parents[2] / "database" / "guildsync.sql"

_POOL: Optional[asyncpg.Pool] = None
_POOL_LOCK = asyncio.Lock()


def _breaker() -> CircuitBreaker:
    return get_circuit_breaker(
        "postgres_main",
        ReliabilityConfigs.postgres_circuit_breaker("main"),
    )


def _check_breaker(operation: str) -> CircuitBreaker:
    circuit_breaker = _breaker()
    if not circuit_breaker.can_execute():
        log.warning(
            f"Circuit breaker preventing {operation}. "
            f"Circuit state: {circuit_breaker.get_state_sync()}"
        )
        raise ConnectionError(f"Circuit breaker is open for PostgreSQL ({operation})")
    return circuit_breaker


async def init_db_pool(config: Optional[PostgresConfig] = None) -> asyncpg.Pool:
    """Initialize the global asyncpg pool. Idempotent."""
    global _POOL

    config = config or get_postgres_config()
    if not config.dsn:
        raise RuntimeError("PostgreSQL DSN not configured (POSTGRES_DSN or DATABASE_URL)")

    circuit_breaker = _check_breaker("pool initialization")

    async with _POOL_LOCK:
        if _POOL is not None and not _POOL.is_closing():
            return _POOL

        async def init_connection(conn):
            await conn.set_type_codec(
                'jsonb',
                encoder=json.dumps,
                decoder=json.loads,
                schema='pg_catalog'
            )

        params = config.to_asyncpg_params()
        params["init"] = init_connection

        log.info(f"Initializing PostgreSQL pool (hidden DSN): {config.dsn.split('@')[-1]}")

        async def create_pool():
            pool = await asyncpg.create_pool(dsn=config.dsn, **params)
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return pool

        try:
            _POOL = await retry_async(
                create_pool,
                retry_config=ReliabilityConfigs.postgres_retry(),
                context="PostgreSQL pool initialization"
            )
        except Exception as e:
            await circuit_breaker.record_failure(str(e))
            log.critical(f"Failed to init PostgreSQL pool: {e}", exc_info=True)
            _POOL = None
            raise RuntimeError(f"PostgreSQL pool init error: {e}") from e

        await circuit_breaker.record_success()
        log.info(f"PostgreSQL pool ready. Min/Max size: {config.pool_min_size}/{config.pool_max_size}")

    return _POOL


async def get_pool() -> asyncpg.Pool:
    """Get the global pool, initializing it on first use."""
    if _POOL is None or _POOL.is_closing():
        return await init_db_pool()
    return _POOL


async def close_db_pool() -> None:
    """Close the global pool gracefully."""
    global _POOL

    async with _POOL_LOCK:
        pool = _POOL
        _POOL = None

        if pool and not pool.is_closing():
            log.info("Closing PostgreSQL pool...")
            await pool.close()
            log.info("PostgreSQL pool closed.")


@asynccontextmanager
async def acquire_connection() -> AsyncIterator[asyncpg.Connection]:
    """Acquire a connection with circuit breaker accounting."""
    circuit_breaker = _check_breaker("connection acquisition")
    pool = await get_pool()

    async with pool.acquire() as conn:
        try:
            yield conn
        except (asyncpg.PostgresConnectionError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            await circuit_breaker.record_failure(str(e))
            raise
        else:
            await circuit_breaker.record_success()


async def _run(method: str, query: str, *args: Any, timeout: Optional[float] = None) -> Any:
    async def _operation():
        start = time.monotonic()
        async with acquire_connection() as conn:
            result = await getattr(conn, method)(query, *args, timeout=timeout)

        elapsed_ms = (time.monotonic() - start) * 1000
        if elapsed_ms > get_postgres_config().slow_query_threshold_ms:
            log.warning(f"[SLOW QUERY] {method.upper()} took {elapsed_ms:.1f}ms: {query[:150]}...")
        return result

    try:
        return await retry_async(
            _operation,
            retry_config=ReliabilityConfigs.postgres_retry(),
            context=f"{method.upper()} {query[:50]}..."
        )
    except Exception as ex:
        log.error(f"PostgreSQL {method} failed: {ex}")
        raise


async def fetch(query: str, *args: Any, timeout: Optional[float] = None) -> List[asyncpg.Record]:
    """Execute the query and return all rows."""
    return await _run("fetch", query, *args, timeout=timeout)


async def fetchrow(query: str, *args: Any, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
    """Execute the query and return the first row."""
    return await _run("fetchrow", query, *args, timeout=timeout)


async def fetchval(query: str, *args: Any, timeout: Optional[float] = None) -> Any:
    """Execute the query and return a single value."""
    return await _run("fetchval", query, *args, timeout=timeout)


async def execute(query: str, *args: Any, timeout: Optional[float] = None) -> str:
    """Execute a statement and return its status string."""
    return await _run("execute", query, *args, timeout=timeout)


@asynccontextmanager
async def transaction(timeout: Optional[float] = None) -> AsyncIterator[asyncpg.Connection]:
    """
    Transaction context manager.

    Usage:
        async with transaction() as conn:
            await conn.execute("INSERT INTO ...")
    """
    async with acquire_connection() as conn:
        async with conn.transaction():
            yield conn


async def run_schema_from_file(file_path_str: Optional[str] = None) -> None:
    """Execute DDL statements from a SQL file."""
    path = pathlib.Path(file_path_str) if file_path_str else DEFAULT_SCHEMA_FILE
    if not path.is_file():
        raise FileNotFoundError(f"Schema file not found: {path}")

    sql = path.read_text(encoding="utf-8").strip()
    if not sql:
        log.warning(f"Schema file {path} is empty")
        return

    async def execute_schema():
        async with acquire_connection() as conn:
            await conn.execute(sql)

    await retry_async(
        execute_schema,
        retry_config=ReliabilityConfigs.postgres_retry(),
        context=f"schema execution from {path.name}"
    )
    log.info(f"Schema from {path.name} applied successfully")


async def health_check() -> dict:
    """Ping the database and report pool state."""
    try:
        start = time.monotonic()
        await fetchval("SELECT 1")
        return {
            "healthy": True,
            "latency_ms": round((time.monotonic() - start) * 1000, 2),
            "circuit_breaker": _breaker().get_state_sync(),
        }
    except Exception as e:
        return {"healthy": False, "error": str(e), "circuit_breaker": _breaker().get_state_sync()}
