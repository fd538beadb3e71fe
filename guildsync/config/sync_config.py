# =============================================================================
# File: guildsync/config/sync_config.py
# Description: Synchronization behaviour: topics, timeouts, dead-letter list
#              and the web-app role to Discord role mapping
# =============================================================================

from functools import lru_cache
from typing import Dict, Optional, List

from pydantic import BaseModel, Field
from pydantic_settings import SettingsConfigDict

from guildsync.common.base.base_config import BaseConfig


class RoleSpec(BaseModel):
    """A managed Discord role: display name and colour"""
    name: str
    color: int = 0


def _default_role_mappings() -> Dict[str, RoleSpec]:
    return {
        "ADMIN": RoleSpec(name="Admin", color=0xE74C3C),
        "PROJECT_MANAGER": RoleSpec(name="Projektledare", color=0x3498DB),
        "ELECTRICIAN": RoleSpec(name="Montör", color=0x27AE60),
        "PAINTER": RoleSpec(name="Målare", color=0xF39C12),
        "WORKER": RoleSpec(name="Montör", color=0x27AE60),
    }


class SyncConfig(BaseConfig):
    """
    Synchronization configuration.

    Role mappings can be overridden per deployment, e.g.
    SYNC_ROLE_MAPPINGS__ADMIN__NAME=Chef
    """

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, 'env_prefix': 'SYNC_'},
    )

    # =========================================================================
    # Ingestion
    # =========================================================================

    topic_prefix: str = Field(
        default="discord:",
        description="Prefix of the Redis pub/sub channel names"
    )

    reconcile_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single reconciliation"
    )

    shutdown_grace_seconds: float = Field(
        default=10.0,
        description="How long in-flight reconciliations may run after stop()"
    )

    # =========================================================================
    # Dead Letters
    # =========================================================================

    dead_letter_key: str = Field(default="guildsync:dead_letter")
    dead_letter_max_entries: int = Field(default=1000)
    dead_letter_ttl_seconds: int = Field(default=7 * 24 * 3600)

    # =========================================================================
    # Structure
    # =========================================================================

    project_category_type: str = Field(
        default="PROJECTS",
        description="Category type whose Discord category parents new project channels"
    )

    default_system_role: str = Field(default="WORKER")
    base_role: RoleSpec = Field(default_factory=lambda: RoleSpec(name="Medlem", color=0x95A5A6))
    role_mappings: Dict[str, RoleSpec] = Field(default_factory=_default_role_mappings)

    # =========================================================================
    # Observability
    # =========================================================================

    metrics_port: Optional[int] = Field(
        default=None,
        description="Expose Prometheus metrics on this port when set"
    )

    def role_for(self, system_role: Optional[str]) -> RoleSpec:
        """Mapped role for a web-app role, falling back to the default role"""
        if system_role and system_role in self.role_mappings:
            return self.role_mappings[system_role]
        return self.role_mappings.get(self.default_system_role, self.base_role)

    def desired_roles(self, system_role: Optional[str]) -> List[RoleSpec]:
        """Base role plus the mapped role, without duplicates"""
        roles = [self.base_role]
        mapped = self.role_for(system_role)
        if mapped.name != self.base_role.name:
            roles.append(mapped)
        return roles

    def managed_role_names(self) -> List[str]:
        """Every role name this service is allowed to grant or revoke"""
        names = [self.base_role.name]
        for spec in self.role_mappings.values():
            if spec.name not in names:
                names.append(spec.name)
        return names


@lru_cache(maxsize=1)
def get_sync_config() -> SyncConfig:
    """Get sync configuration singleton (cached)."""
    return SyncConfig()


def reset_sync_config() -> None:
    """Reset config singleton (for testing)."""
    get_sync_config.cache_clear()
