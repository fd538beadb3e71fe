# =============================================================================
# File: guildsync/config/redis_config.py
# Description: Configuration for the Redis client with Pydantic v2
# =============================================================================
from functools import lru_cache
from typing import Optional, Dict, Any
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import SettingsConfigDict

from guildsync.common.base.base_config import BaseConfig


# noinspection PyMethodParameters
class RedisConfig(BaseConfig):
    """
    Configuration for the Redis client used for pub/sub ingestion
    and the dead-letter list.
    """

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, 'env_prefix': 'REDIS_'},
    )

    # =========================================================================
    # Connection Settings
    # =========================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )

    max_connections: int = Field(
        default=20,
        description="Maximum number of connections in the pool"
    )

    socket_timeout: float = Field(
        default=15.0,
        description="Socket timeout in seconds"
    )

    socket_connect_timeout: float = Field(
        default=5.0,
        description="Socket connection timeout in seconds"
    )

    socket_keepalive: bool = Field(
        default=True,
        description="Enable TCP keepalive"
    )

    decode_responses: bool = Field(
        default=True,
        description="Automatically decode responses to strings"
    )

    # =========================================================================
    # Pub/Sub
    # =========================================================================

    pubsub_poll_timeout: float = Field(
        default=1.0,
        description="Seconds to block in get_message before re-checking the running flag"
    )

    # =========================================================================
    # Security
    # =========================================================================

    redis_password: Optional[SecretStr] = Field(
        default=None,
        description="Redis password"
    )

    redis_username: Optional[str] = Field(
        default=None,
        description="Redis username (Redis 6+)"
    )

    ssl_enabled: bool = Field(
        default=False,
        description="Enable SSL/TLS"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator('redis_url')
    def validate_redis_url(cls, v):
        """Validate Redis URL format"""
        if not v:
            raise ValueError("redis_url cannot be empty")
        if not v.startswith(('redis://', 'rediss://', 'unix://')):
            raise ValueError("redis_url must start with redis://, rediss://, or unix://")
        return v

    @field_validator('max_connections')
    def validate_max_connections(cls, v):
        if v < 1:
            raise ValueError("max_connections must be at least 1")
        return v

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for Redis connection"""
        kwargs = {
            'decode_responses': self.decode_responses,
            'socket_timeout': self.socket_timeout,
            'socket_connect_timeout': self.socket_connect_timeout,
            'socket_keepalive': self.socket_keepalive,
            'max_connections': self.max_connections,
        }

        if self.redis_password:
            kwargs['password'] = self.redis_password.get_secret_value()

        if self.redis_username:
            kwargs['username'] = self.redis_username

        if self.ssl_enabled:
            kwargs['ssl'] = True

        return kwargs


@lru_cache(maxsize=1)
def get_redis_config() -> RedisConfig:
    """Get Redis configuration singleton (cached)."""
    return RedisConfig()


def reset_redis_config() -> None:
    """Reset config singleton (for testing)."""
    get_redis_config.cache_clear()
