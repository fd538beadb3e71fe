# =============================================================================
# File: guildsync/sync/interaction/identity.py
# Description: Resolve the Discord user behind an interaction to a member of
#              the web app, or to a view-only guest
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Union

from guildsync.config.logging_config import get_logger
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.ports.web_app_port import WebAppPort

log = get_logger("guildsync.interaction.identity")

GUEST_ROLE = "GUEST"
ADMIN_ROLES = frozenset({"ADMIN", "PROJECT_MANAGER"})


class Capability(str, Enum):
    VIEW = "view"
    WRITE = "write"
    ADMIN = "admin"


def capabilities_for(role: Optional[str]) -> FrozenSet[Capability]:
    caps = {Capability.VIEW, Capability.WRITE}
    if role in ADMIN_ROLES:
        caps.add(Capability.ADMIN)
    return frozenset(caps)


@dataclass(frozen=True)
class MemberIdentity:
    user_id: str
    external_user_id: str
    tenant_id: str
    display_name: str
    role: str
    capabilities: FrozenSet[Capability] = field(default_factory=lambda: capabilities_for(None))

    is_guest = False

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class GuestIdentity:
    """An unlinked Discord user. Never acquires more than VIEW."""
    external_user_id: str
    tenant_id: Optional[str]
    display_name: str
    role: str = GUEST_ROLE

    is_guest = True

    @property
    def user_id(self) -> str:
        return f"guest-{self.external_user_id}"

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return frozenset({Capability.VIEW})

    def can(self, capability: Capability) -> bool:
        return capability == Capability.VIEW


Identity = Union[MemberIdentity, GuestIdentity]


class IdentityResolver:

    def __init__(self, web_app: WebAppPort, store: CorrelationStorePort):
        self.web_app = web_app
        self.store = store

    async def resolve_identity(
        self,
        external_user_id: str,
        guild_id: Optional[str],
        display_name: Optional[str] = None,
    ) -> Identity:
        tenant_id: Optional[str] = None
        if guild_id:
            link = await self.store.get_tenant_link_by_guild(guild_id)
            tenant_id = link.tenant_id if link else None

        user = await self.web_app.find_user_by_external_id(external_user_id, tenant_id)
        if user is None:
            log.debug(f"Discord user {external_user_id} is not linked, acting as guest")
            return self._guest(external_user_id, tenant_id, display_name)

        # A linked account without membership in this tenant stays a guest
        if user.tenant_id is None or (tenant_id and user.tenant_id != tenant_id):
            log.info(f"Discord user {external_user_id} has no membership in tenant {tenant_id}, acting as guest")
            return self._guest(external_user_id, tenant_id, display_name)

        role = user.role or await self.web_app.get_membership_role(user.id, user.tenant_id) or "WORKER"
        return MemberIdentity(
            user_id=user.id,
            external_user_id=external_user_id,
            tenant_id=user.tenant_id,
            display_name=user.name or display_name or external_user_id,
            role=role,
            capabilities=capabilities_for(role),
        )

    @staticmethod
    def _guest(external_user_id: str, tenant_id: Optional[str], display_name: Optional[str]) -> GuestIdentity:
        return GuestIdentity(
            external_user_id=external_user_id,
            tenant_id=tenant_id,
            display_name=display_name or f"Gäst {external_user_id[-4:]}",
        )
