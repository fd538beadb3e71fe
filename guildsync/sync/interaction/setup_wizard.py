# =============================================================================
# File: guildsync/sync/interaction/setup_wizard.py
# Description: Final step of the onboarding flow: link tenant and guild, then
#              build the channel set of every selected project
# =============================================================================

from __future__ import annotations

from typing import Optional, Sequence

from guildsync.common.exceptions.exceptions import ConflictError
from guildsync.config.logging_config import get_logger
from guildsync.infra.reliability.keyed_lock import KeyedLock
from guildsync.sync.models import ChannelSetResult, PermissionAction, SetupReport, TenantChatLink
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.ports.web_app_port import WebAppPort
from guildsync.sync.reconcilers.channel_lifecycle import ChannelLifecycleReconciler

log = get_logger("guildsync.interaction.setup_wizard")


class SetupWizard:

    def __init__(
        self,
        store: CorrelationStorePort,
        web_app: WebAppPort,
        channels: ChannelLifecycleReconciler,
        locks: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.web_app = web_app
        self.channels = channels
        self.locks = locks if locks is not None else KeyedLock()

    async def ensure_tenant_link(self, tenant_id: str, guild_id: str) -> TenantChatLink:
        """
        Raises:
            ConflictError: tenant linked to another guild, or guild to another tenant
        """
        existing = await self.store.get_tenant_link(tenant_id)
        if existing is not None and existing.guild_id != guild_id:
            raise ConflictError(f"Tenant {tenant_id} is already linked to guild {existing.guild_id}")

        by_guild = await self.store.get_tenant_link_by_guild(guild_id)
        if by_guild is not None and by_guild.tenant_id != tenant_id:
            raise ConflictError(f"Guild {guild_id} is already linked to tenant {by_guild.tenant_id}")

        if existing is not None:
            return existing

        link = TenantChatLink(tenant_id=tenant_id, guild_id=guild_id)
        await self.store.upsert_tenant_link(link)
        log.info(f"Linked tenant {tenant_id} to guild {guild_id}")
        return link

    async def run(self, tenant_id: str, guild_id: str, project_ids: Sequence[str]) -> SetupReport:
        await self.ensure_tenant_link(tenant_id, guild_id)
        report = SetupReport(tenant_id=tenant_id, guild_id=guild_id)

        for project_id in dict.fromkeys(project_ids):
            project = await self.web_app.get_project(project_id)
            if project is None or project.tenant_id != tenant_id:
                report.failed.append((project_id, project_id, "Projektet hittades inte"))
                continue

            # Same key as project events in the dispatcher
            async with self.locks.hold(f"project:{project.id}"):
                result = await self.channels.ensure_project_channels(tenant_id, project.id, project.name)
                if result.complete:
                    await self._grant_members(result)

            if result.complete:
                report.succeeded.append((project.id, project.name))
            else:
                report.failed.append((project.id, project.name, result.outcome.reason or "kanaler saknas"))

        log.info(
            f"Setup for tenant {tenant_id}: {report.success_count} synced, {report.failure_count} failed"
        )
        return report

    async def _grant_members(self, result: ChannelSetResult) -> int:
        """Give linked project members access to the new channels. Best effort."""
        members = await self.web_app.list_project_members(result.project_id)
        granted = 0
        for member in members:
            if not member.discord_user_id:
                continue
            for channel_id in result.channels.values():
                outcome = await self.channels.update_channel_permissions(
                    channel_id, member.discord_user_id, PermissionAction.GRANT
                )
                if outcome.is_ok:
                    granted += 1
        return granted
