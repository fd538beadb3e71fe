# =============================================================================
# File: guildsync/config/reliability_config.py
# Description: Circuit breaker, retry and rate limit settings for Discord,
#              Redis and PostgreSQL
# =============================================================================

from functools import lru_cache
from typing import Optional, Callable
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import SettingsConfigDict

from guildsync.common.base.base_config import BaseConfig


# =============================================================================
# Configuration Models
# =============================================================================

class CircuitBreakerConfig(BaseModel):
    name: str
    failure_threshold: int = 5
    success_threshold: int = 3
    reset_timeout_seconds: float = 30
    half_open_max_calls: int = 3
    window_size: Optional[int] = None
    failure_rate_threshold: Optional[float] = None


class RetryConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_attempts: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0
    jitter: bool = True
    jitter_type: str = "full"  # full | equal
    retry_condition: Optional[Callable[[Exception], bool]] = None


class RateLimiterConfig(BaseModel):
    """Token bucket: ``capacity`` burst, ``refill_rate`` tokens per second"""
    capacity: int = 100
    refill_rate: float = 10.0


# =============================================================================
# Global Reliability Settings (loads from env)
# =============================================================================

class ReliabilitySettings(BaseConfig):
    """Feature flags; individual configs come from ReliabilityConfigs."""

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, 'env_prefix': 'RELIABILITY_'},
    )

    enable_circuit_breakers: bool = Field(default=True)
    enable_rate_limiting: bool = Field(default=True)


@lru_cache(maxsize=1)
def get_reliability_settings() -> ReliabilitySettings:
    return ReliabilitySettings()


def reset_reliability_settings() -> None:
    """Reset settings singleton (for testing)."""
    get_reliability_settings.cache_clear()


# =============================================================================
# Retry Conditions
# =============================================================================

_NEVER_RETRY = (
    "syntax error",
    "violates unique constraint",
    "violates foreign key",
    "violates check constraint",
    "WRONGTYPE",
    "ERR invalid",
    "ERR syntax",
)


def should_retry(error: Exception) -> bool:
    """Retry anything except errors a second attempt cannot fix"""
    if getattr(error, '__permanent__', False):
        return False
    message = str(error)
    if "deadlock detected" in message:
        return True
    return not any(term in message for term in _NEVER_RETRY)


# =============================================================================
# ReliabilityConfigs Factory Class
# =============================================================================

class ReliabilityConfigs:
    """Pre-configured reliability settings for the services GuildSync talks to"""

    # =========================================================================
    # Redis
    # =========================================================================
    @staticmethod
    def redis_circuit_breaker(name: str) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            name=f"redis_{name}",
            failure_threshold=3,
            reset_timeout_seconds=15,
            half_open_max_calls=3,
            success_threshold=2
        )

    @staticmethod
    def redis_retry() -> RetryConfig:
        return RetryConfig(
            max_attempts=3,
            initial_delay_ms=50,
            max_delay_ms=1000,
            retry_condition=should_retry
        )

    # =========================================================================
    # PostgreSQL
    # =========================================================================
    @staticmethod
    def postgres_circuit_breaker(name: str) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            name=f"postgres_{name}",
            failure_threshold=5,
            reset_timeout_seconds=30,
            half_open_max_calls=3,
            success_threshold=2
        )

    @staticmethod
    def postgres_retry() -> RetryConfig:
        return RetryConfig(
            max_attempts=3,
            initial_delay_ms=100,
            max_delay_ms=2000,
            retry_condition=should_retry
        )

    # =========================================================================
    # Discord
    # =========================================================================
    @staticmethod
    def discord_circuit_breaker() -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            name="discord_api",
            failure_threshold=5,
            success_threshold=2,
            reset_timeout_seconds=60,
            half_open_max_calls=3,
            window_size=20,
            failure_rate_threshold=0.5
        )

    @staticmethod
    def discord_rate_limiter() -> RateLimiterConfig:
        # Discord allows 50 requests/s globally per bot
        return RateLimiterConfig(capacity=40, refill_rate=25.0)

    @staticmethod
    def discord_login_retry() -> RetryConfig:
        return RetryConfig(
            max_attempts=5,
            initial_delay_ms=1000,
            max_delay_ms=30000,
            jitter_type="equal"
        )
