# =============================================================================
# File: guildsync/sync/reconcilers/role_sync.py
# Description: Web-app membership roles -> managed Discord roles, and project
#              membership -> channel overwrites
# =============================================================================

from __future__ import annotations

from typing import List, Optional, Sequence

from guildsync.config.logging_config import get_logger
from guildsync.config.sync_config import RoleSpec, SyncConfig, get_sync_config
from guildsync.sync.models import PermissionAction
from guildsync.sync.outcome import SyncOutcome, combine
from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.ports.web_app_port import WebAppPort
from guildsync.sync.reconcilers.channel_lifecycle import ChannelLifecycleReconciler

log = get_logger("guildsync.reconcilers.roles")


class RoleSyncReconciler:
    """
    Converges a member's managed roles to ``SyncConfig.desired_roles``.

    Only managed roles (the base role and every mapped role) are ever
    revoked; roles the guild hands out by other means are left alone.
    Failures are collected per role and never roll back other changes.
    """

    def __init__(
        self,
        gateway: ChatGatewayPort,
        store: CorrelationStorePort,
        web_app: WebAppPort,
        channels: ChannelLifecycleReconciler,
        sync_config: Optional[SyncConfig] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.web_app = web_app
        self.channels = channels
        self.sync_config = sync_config or get_sync_config()

    async def _guild(self, tenant_id: str) -> Optional[str]:
        link = await self.store.get_tenant_link(tenant_id)
        if link is None:
            log.info(f"Tenant {tenant_id} has no linked guild, skipping role sync")
        return link.guild_id if link else None

    # =========================================================================
    # Lifecycle Entry Points
    # =========================================================================

    async def on_user_linked(self, tenant_id: str, user_id: str, discord_user_id: str) -> SyncOutcome:
        guild_id = await self._guild(tenant_id)
        if not guild_id:
            return SyncOutcome.skipped("tenant has no guild")

        role = await self.web_app.get_membership_role(user_id, tenant_id)
        role = role or self.sync_config.default_system_role
        return await self.reconcile_member(guild_id, discord_user_id, self.sync_config.desired_roles(role))

    async def on_user_unlinked(self, tenant_id: str, discord_user_id: str) -> SyncOutcome:
        """Also used for deactivation: strip every managed role."""
        guild_id = await self._guild(tenant_id)
        if not guild_id:
            return SyncOutcome.skipped("tenant has no guild")
        return await self.reconcile_member(guild_id, discord_user_id, [])

    async def on_role_changed(self, tenant_id: str, discord_user_id: str, new_role: str) -> SyncOutcome:
        guild_id = await self._guild(tenant_id)
        if not guild_id:
            return SyncOutcome.skipped("tenant has no guild")
        return await self.reconcile_member(guild_id, discord_user_id, self.sync_config.desired_roles(new_role))

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile_member(self, guild_id: str, discord_user_id: str, desired: Sequence[RoleSpec]) -> SyncOutcome:
        current = await self.gateway.fetch_member_roles(guild_id, discord_user_id)
        if not current.in_guild:
            log.info(f"User {discord_user_id} is not in guild {guild_id}, skipping role sync")
            return SyncOutcome.skipped("member not in guild")
        if not current.success:
            return SyncOutcome.warning(
                f"fetch roles of {discord_user_id}: {current.error}",
                retryable=current.kind is not None and current.kind.is_transient,
            )

        desired_names = {spec.name for spec in desired}
        outcomes: List[SyncOutcome] = []

        for spec in desired:
            if spec.name in current.roles:
                continue
            role = await self.gateway.ensure_role(guild_id, spec.name, spec.color)
            if not role.success:
                log.warning(f"Could not ensure role '{spec.name}' in {guild_id}: {role.error}")
                outcomes.append(role.to_warning(f"ensure role {spec.name}"))
                continue
            granted = await self.gateway.grant_role(guild_id, discord_user_id, role.external_id)
            if granted.success:
                outcomes.append(SyncOutcome.ok())
            else:
                log.warning(f"Could not grant '{spec.name}' to {discord_user_id}: {granted.error}")
                outcomes.append(granted.to_warning(f"grant {spec.name}"))

        for name in self.sync_config.managed_role_names():
            role_id = current.roles.get(name)
            if name in desired_names or role_id is None:
                continue
            revoked = await self.gateway.revoke_role(guild_id, discord_user_id, role_id)
            if revoked.success or revoked.not_found:
                outcomes.append(SyncOutcome.ok())
            else:
                log.warning(f"Could not revoke '{name}' from {discord_user_id}: {revoked.error}")
                outcomes.append(revoked.to_warning(f"revoke {name}"))

        if not outcomes:
            return SyncOutcome.ok("already in sync")
        return combine(outcomes)

    # =========================================================================
    # Project Membership
    # =========================================================================

    async def on_project_member_changed(
        self,
        project_id: str,
        user_id: str,
        action: PermissionAction,
        discord_user_id: Optional[str] = None,
    ) -> SyncOutcome:
        discord_user_id = discord_user_id or await self.web_app.get_linked_external_id(user_id)
        if not discord_user_id:
            log.info(f"User {user_id} has no linked Discord account, skipping channel access")
            return SyncOutcome.skipped("no linked account")

        links = await self.store.get_project_channels(project_id)
        live = [link for link in links.values() if not link.archived]
        if not live:
            return SyncOutcome.skipped("project has no channels")

        outcomes = [
            await self.channels.update_channel_permissions(link.channel_id, discord_user_id, action)
            for link in live
        ]
        return combine(outcomes)
