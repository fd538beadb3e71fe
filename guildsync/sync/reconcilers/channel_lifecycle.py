# =============================================================================
# File: guildsync/sync/reconcilers/channel_lifecycle.py
# Description: Project channels, archive moves, category structure and
#              per-member channel overwrites
# =============================================================================

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from guildsync.config.discord_config import DiscordConfig, get_discord_config
from guildsync.config.logging_config import get_logger
from guildsync.config.sync_config import SyncConfig, get_sync_config
from guildsync.sync.models import (
    CategoryLink,
    CategorySpec,
    CategorySyncReport,
    ChannelKind,
    ChannelSetResult,
    PermissionAction,
    ProjectChannelLink,
)
from guildsync.sync.outcome import SyncOutcome, combine
from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.ports.web_app_port import WebAppPort
from guildsync.sync.templates import channel_name_for, hub_card

log = get_logger("guildsync.reconcilers.channels")

CHANNEL_TOPICS: Dict[ChannelKind, str] = {
    ChannelKind.GENERAL: "Allmänt för projektet {name}",
    ChannelKind.TASKS: "Uppgifter för projektet {name}",
    ChannelKind.FILES: "Filer för projektet {name}",
    ChannelKind.ACTIVITY: "Aktivitet för projektet {name}",
}


class ChannelLifecycleReconciler:
    """
    Converges a tenant's Discord channel and category layout.

    Every operation is idempotent: a stored link is verified before reuse,
    and a link whose Discord object is gone is recreated and overwritten.
    """

    def __init__(
        self,
        gateway: ChatGatewayPort,
        store: CorrelationStorePort,
        web_app: WebAppPort,
        discord_config: Optional[DiscordConfig] = None,
        sync_config: Optional[SyncConfig] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.web_app = web_app
        self.discord_config = discord_config or get_discord_config()
        self.sync_config = sync_config or get_sync_config()

    async def guild_for_tenant(self, tenant_id: str) -> Optional[str]:
        link = await self.store.get_tenant_link(tenant_id)
        return link.guild_id if link else None

    # =========================================================================
    # Project Channels
    # =========================================================================

    async def ensure_project_channels(
        self,
        tenant_id: str,
        project_id: str,
        name: Optional[str] = None,
    ) -> ChannelSetResult:
        result = ChannelSetResult(project_id=project_id)

        guild_id = await self.guild_for_tenant(tenant_id)
        if not guild_id:
            log.info(f"Tenant {tenant_id} has no linked guild, skipping channels for project {project_id}")
            result.outcomes.append(SyncOutcome.skipped("tenant has no guild"))
            return result

        if name is None:
            project = await self.web_app.get_project(project_id)
            if project is None:
                result.outcomes.append(SyncOutcome.skipped(f"project {project_id} not found"))
                return result
            name = project.name

        links = await self.store.get_project_channels(project_id)
        parent_id = await self._project_parent_category(tenant_id)

        for kind in ChannelKind:
            link = links.get(kind)
            repairing = False

            if link is not None:
                check = await self.gateway.fetch_channel(link.channel_id)
                if check.success:
                    result.channels[kind] = link.channel_id
                    result.reused.append(kind)
                    continue
                if not check.not_found:
                    # Keep the link; the channel may well still exist
                    result.channels[kind] = link.channel_id
                    result.outcomes.append(check.to_warning(f"verify {kind.value} channel"))
                    continue
                log.warning(f"Channel {link.channel_id} ({kind.value}) of project {project_id} is gone, recreating")
                repairing = True

            created = await self.gateway.ensure_channel(
                guild_id,
                channel_name_for(name, kind),
                parent_id=parent_id,
                topic=CHANNEL_TOPICS[kind].format(name=name),
            )
            if not created.success:
                result.outcomes.append(created.to_warning(f"create {kind.value} channel"))
                continue

            await self.store.upsert_project_channel(ProjectChannelLink(
                project_id=project_id,
                kind=kind,
                channel_id=created.external_id,
                guild_id=guild_id,
            ))
            result.channels[kind] = created.external_id
            (result.repaired if repairing else result.created).append(kind)

            if kind == ChannelKind.GENERAL:
                result.outcomes.append(await self._post_hub(created.external_id, project_id, name))

        if result.created or result.repaired:
            log.info(
                f"Project {project_id} channels: created={[k.value for k in result.created]} "
                f"repaired={[k.value for k in result.repaired]} reused={[k.value for k in result.reused]}"
            )
        return result

    async def _project_parent_category(self, tenant_id: str) -> Optional[str]:
        category = await self.store.find_category_by_type(tenant_id, self.sync_config.project_category_type)
        return category.external_category_id if category else None

    async def _post_hub(self, channel_id: str, project_id: str, name: str) -> SyncOutcome:
        posted = await self.gateway.post_message(
            channel_id, hub_card(project_id, name, self.discord_config.web_app_url)
        )
        if not posted.success:
            return posted.to_warning("post hub message")

        pinned = await self.gateway.pin_message(channel_id, posted.external_id)
        if not pinned.success:
            log.warning(f"Could not pin hub message in {channel_id}: {pinned.error}")
            return pinned.to_warning("pin hub message")
        return SyncOutcome.ok()

    # =========================================================================
    # Archive
    # =========================================================================

    async def archive_project_channel(
        self,
        tenant_id: str,
        project_id: str,
        channel_id: Optional[str] = None,
    ) -> SyncOutcome:
        links = await self.store.get_project_channels(project_id)
        targets: List[str] = [link.channel_id for link in links.values() if not link.archived]
        if channel_id and channel_id not in targets and not any(
            link.channel_id == channel_id and link.archived for link in links.values()
        ):
            targets.append(channel_id)

        if not targets:
            log.info(f"No live channels for project {project_id}, nothing to archive")
            return SyncOutcome.skipped("no channels to archive")

        guild_id = await self.guild_for_tenant(tenant_id)
        if not guild_id:
            guild_id = next((link.guild_id for link in links.values()), None)
        if not guild_id:
            return SyncOutcome.skipped("tenant has no guild")

        category = await self.gateway.ensure_category(guild_id, self.discord_config.archive_category_name)
        if not category.success:
            return category.to_warning("ensure archive category")

        outcomes: List[SyncOutcome] = []
        for target in targets:
            moved = await self.gateway.archive_channel(target, category.external_id)
            if moved.success or moved.not_found:
                await self.store.mark_project_archived(project_id, target)
                outcomes.append(SyncOutcome.ok())
            else:
                outcomes.append(moved.to_warning(f"archive channel {target}"))

        log.info(f"Archived {len(targets)} channel(s) of project {project_id}")
        return combine(outcomes)

    # =========================================================================
    # Categories
    # =========================================================================

    async def sync_category_structure(
        self,
        guild_id: str,
        tenant_id: str,
        categories: Sequence[CategorySpec],
    ) -> CategorySyncReport:
        """
        Ensure each desired category exists with the desired name.

        Linked categories missing from ``categories`` are left alone.
        """
        report = CategorySyncReport()
        for spec in categories:
            report.outcomes[spec.id] = await self._sync_category(guild_id, tenant_id, spec)
        return report

    async def _sync_category(self, guild_id: str, tenant_id: str, spec: CategorySpec) -> SyncOutcome:
        link = await self.store.get_category_link(tenant_id, spec.id)
        external_id = link.external_category_id if link else spec.discord_category_id

        if external_id:
            current = await self.gateway.fetch_channel(external_id)
            if current.success:
                if current.name != spec.name:
                    renamed = await self.gateway.rename_channel(external_id, spec.name)
                    if not renamed.success:
                        return renamed.to_warning(f"rename category {spec.id}")
                    log.info(f"Renamed category {external_id} '{current.name}' -> '{spec.name}'")
                await self._link_category(tenant_id, spec, external_id)
                return SyncOutcome.ok()
            if not current.not_found:
                return current.to_warning(f"verify category {spec.id}")
            log.warning(f"Category {external_id} for {spec.id} is gone, recreating")

        created = await self.gateway.ensure_category(guild_id, spec.name)
        if not created.success:
            return created.to_warning(f"create category {spec.id}")

        await self._link_category(tenant_id, spec, created.external_id)
        return SyncOutcome.ok()

    async def _link_category(self, tenant_id: str, spec: CategorySpec, external_id: str) -> None:
        await self.store.upsert_category_link(CategoryLink(
            tenant_id=tenant_id,
            category_id=spec.id,
            external_category_id=external_id,
            name=spec.name,
            category_type=spec.type,
        ))

    async def delete_category(
        self,
        tenant_id: str,
        category_id: str,
        external_category_id: Optional[str] = None,
    ) -> SyncOutcome:
        link = await self.store.get_category_link(tenant_id, category_id)
        external_id = external_category_id or (link.external_category_id if link else None)
        if not external_id:
            return SyncOutcome.skipped("category not linked")

        deleted = await self.gateway.delete_channel(external_id)
        if not deleted.success and not deleted.not_found:
            return deleted.to_warning(f"delete category {category_id}")

        await self.store.delete_category_link(tenant_id, category_id)
        log.info(f"Deleted category {external_id} ({category_id})")
        return SyncOutcome.ok()

    # =========================================================================
    # Permissions
    # =========================================================================

    async def update_channel_permissions(
        self,
        channel_id: str,
        external_user_id: str,
        action: PermissionAction,
    ) -> SyncOutcome:
        changed = await self.gateway.set_permission(channel_id, external_user_id, action)
        if changed.success:
            return SyncOutcome.ok()
        if changed.not_found:
            return SyncOutcome.skipped(f"channel {channel_id} not found")
        return changed.to_warning(f"{action.value} access to {channel_id}")
