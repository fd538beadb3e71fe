# =============================================================================
# File: guildsync/sync/ports/web_app_port.py
# Description: Port interface for the web application's data
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from datetime import date
from typing import Protocol, Optional, List, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from guildsync.sync.models import (
        ProjectMemberRecord,
        ProjectRecord,
        TaskRecord,
        TenantRecord,
        UserRecord,
    )


@runtime_checkable
class WebAppPort(Protocol):
    """
    Port: Web Application Data

    Defined by: Sync Domain
    Implemented by: WebAppRepo (guildsync/infra/read_repos/web_app_repo.py)

    Reads resolve entities referenced by events and interactions. Writes are
    the actions users can take from Discord buttons and modals.

    Categories:
    - Reads (8 methods)
    - Writes (5 methods)

    Total: 13 methods
    """

    # =========================================================================
    # Reads (8 methods)
    # =========================================================================

    async def get_tenant(self, tenant_id: str) -> Optional['TenantRecord']:
        ...

    async def get_project(self, project_id: str) -> Optional['ProjectRecord']:
        ...

    async def list_tenant_projects(
        self,
        tenant_id: str,
        status: Optional[str] = "ACTIVE",
        limit: int = 25,
    ) -> List['ProjectRecord']:
        """Projects ordered by name."""
        ...

    async def get_task(self, task_id: str) -> Optional['TaskRecord']:
        ...

    async def get_membership_role(self, user_id: str, tenant_id: Optional[str] = None) -> Optional[str]:
        """System role of the user's membership, ``None`` when not a member."""
        ...

    async def get_linked_external_id(self, user_id: str) -> Optional[str]:
        """Discord user id of the user's linked account."""
        ...

    async def find_user_by_external_id(
        self,
        external_id: str,
        tenant_id: Optional[str] = None,
    ) -> Optional['UserRecord']:
        """Resolve a Discord user id to an internal user with a membership."""
        ...

    async def list_project_members(self, project_id: str) -> List['ProjectMemberRecord']:
        ...

    # =========================================================================
    # Writes (5 methods)
    # =========================================================================

    async def complete_task(self, task_id: str, user_id: str) -> 'TaskRecord':
        """
        Raises:
            NotFoundError: unknown task
        """
        ...

    async def assign_task(self, task_id: str, assignee_user_id: str, actor_id: str) -> 'TaskRecord':
        """
        Raises:
            NotFoundError: unknown task or assignee not a project member
        """
        ...

    async def create_time_entry(
        self,
        task_id: str,
        user_id: str,
        minutes: int,
        entry_date: date,
        description: Optional[str] = None,
    ) -> str:
        """Returns the new time entry id"""
        ...

    async def create_task(
        self,
        project_id: str,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        deadline: Optional[date] = None,
    ) -> 'TaskRecord':
        ...

    async def create_note(self, project_id: str, user_id: str, title: str, content: str) -> str:
        """Returns the new note id"""
        ...


# =============================================================================
# EOF
# =============================================================================
