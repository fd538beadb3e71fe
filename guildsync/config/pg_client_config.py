# =============================================================================
# File: guildsync/config/pg_client_config.py
# Description: Database configuration for the PostgreSQL pool
# =============================================================================

from functools import lru_cache
from typing import Optional, Dict, Any
from pydantic import AliasChoices, Field
from pydantic_settings import SettingsConfigDict

from guildsync.common.base.base_config import BaseConfig


class PostgresConfig(BaseConfig):
    """PostgreSQL configuration for the correlation store and web-app reads"""

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, 'env_prefix': 'POSTGRES_'},
    )

    # Same database as the web app; DATABASE_URL is what the web app exports
    dsn: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("POSTGRES_DSN", "DATABASE_URL"),
        description="Database DSN"
    )

    # Pool configuration
    pool_min_size: int = Field(default=2, description="Pool min size")
    pool_max_size: int = Field(default=10, description="Pool max size")
    pool_timeout: float = Field(default=5.0, description="Pool acquisition timeout")
    command_timeout: float = Field(default=10.0, description="Per-statement timeout")

    statement_cache_size: int = Field(default=100)
    max_inactive_connection_lifetime: float = Field(default=300.0)

    # Features
    run_schema_on_start: bool = Field(default=True)
    schema_file: Optional[str] = Field(
        default=None,
        description="DDL file to apply on start; defaults to the bundled guildsync.sql"
    )

    # Monitoring
    slow_query_threshold_ms: float = Field(default=1000.0)

    def to_asyncpg_params(self) -> Dict[str, Any]:
        """Convert to asyncpg pool parameters"""
        return {
            'min_size': self.pool_min_size,
            'max_size': self.pool_max_size,
            'timeout': self.pool_timeout,
            'command_timeout': self.command_timeout,
            'statement_cache_size': self.statement_cache_size,
            'max_inactive_connection_lifetime': self.max_inactive_connection_lifetime,
        }


@lru_cache(maxsize=1)
def get_postgres_config() -> PostgresConfig:
    """Get PostgreSQL configuration singleton (cached)."""
    return PostgresConfig()


def reset_postgres_config() -> None:
    """Reset config singleton (for testing)."""
    get_postgres_config.cache_clear()
