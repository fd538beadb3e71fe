# =============================================================================
# File: guildsync/sync/ports/correlation_store_port.py
# Description: Port interface for internal-ID <-> Discord-ID links
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Protocol, Optional, Dict, List, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from guildsync.sync.models import (
        CategoryLink,
        ChannelKind,
        ProjectChannelLink,
        TaskPostingLink,
        TenantChatLink,
    )


@runtime_checkable
class CorrelationStorePort(Protocol):
    """
    Port: Correlation Store

    Defined by: Sync Domain
    Implemented by: CorrelationRepo (guildsync/infra/read_repos/correlation_repo.py)

    Single source of truth for what exists on Discord. All writes are
    single-row upserts keyed by the internal entity ID.

    Categories:
    - Tenant links (3 methods)
    - Project channel links (5 methods)
    - Task postings (3 methods)
    - Category links (5 methods)

    Total: 16 methods
    """

    # =========================================================================
    # Tenant Links (3 methods)
    # =========================================================================

    async def get_tenant_link(self, tenant_id: str) -> Optional['TenantChatLink']:
        ...

    async def get_tenant_link_by_guild(self, guild_id: str) -> Optional['TenantChatLink']:
        ...

    async def upsert_tenant_link(self, link: 'TenantChatLink') -> None:
        """
        Raises:
            ConflictError: the guild is already linked to another tenant
        """
        ...

    # =========================================================================
    # Project Channel Links (5 methods)
    # =========================================================================

    async def get_project_channels(self, project_id: str) -> Dict['ChannelKind', 'ProjectChannelLink']:
        ...

    async def get_project_channel(self, project_id: str, kind: 'ChannelKind') -> Optional['ProjectChannelLink']:
        ...

    async def upsert_project_channel(self, link: 'ProjectChannelLink') -> None:
        """Insert or overwrite the link for ``(project_id, kind)``."""
        ...

    async def mark_project_archived(self, project_id: str, channel_id: Optional[str] = None) -> int:
        """Mark links archived (only ``channel_id`` when given). Returns rows touched."""
        ...

    async def find_project_by_channel(self, channel_id: str) -> Optional['ProjectChannelLink']:
        ...

    # =========================================================================
    # Task Postings (3 methods)
    # =========================================================================

    async def get_task_posting(self, task_id: str) -> Optional['TaskPostingLink']:
        ...

    async def upsert_task_posting(self, link: 'TaskPostingLink') -> None:
        ...

    async def delete_task_posting(self, task_id: str) -> bool:
        ...

    # =========================================================================
    # Category Links (5 methods)
    # =========================================================================

    async def get_category_link(self, tenant_id: str, category_id: str) -> Optional['CategoryLink']:
        ...

    async def list_category_links(self, tenant_id: str) -> List['CategoryLink']:
        ...

    async def upsert_category_link(self, link: 'CategoryLink') -> None:
        ...

    async def delete_category_link(self, tenant_id: str, category_id: str) -> bool:
        ...

    async def find_category_by_type(self, tenant_id: str, category_type: str) -> Optional['CategoryLink']:
        ...


# =============================================================================
# EOF
# =============================================================================
