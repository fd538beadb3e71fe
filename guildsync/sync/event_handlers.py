# =============================================================================
# File: guildsync/sync/event_handlers.py
# Description: Topic -> reconciler routing for inbound sync events
# =============================================================================

from __future__ import annotations

from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional

from guildsync.config.discord_config import DiscordConfig, get_discord_config
from guildsync.config.logging_config import get_logger
from guildsync.config.sync_config import SyncConfig, get_sync_config
from guildsync.sync import events as ev
from guildsync.sync.models import ChannelKind, PermissionAction, TaskRecord
from guildsync.sync.outcome import SyncOutcome, combine
from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
from guildsync.sync.ports.web_app_port import WebAppPort
from guildsync.sync.reconcilers.channel_lifecycle import ChannelLifecycleReconciler
from guildsync.sync.reconcilers.notification import ChannelTarget, NotificationFanout
from guildsync.sync.reconcilers.role_sync import RoleSyncReconciler
from guildsync.sync.reconcilers.task_posting import TaskPostingReconciler
from guildsync.sync.templates import (
    comment_card,
    file_card,
    task_completed_card,
    task_created_notice,
    time_logged_card,
)

log = get_logger("guildsync.event_handlers")

Handler = Callable[[Any], Awaitable[SyncOutcome]]
Publisher = Callable[[str, Dict[str, Any]], Awaitable[int]]


class SyncEventHandlers:
    """Adapts typed payloads to reconciler calls; one coroutine per topic."""

    def __init__(
        self,
        gateway: ChatGatewayPort,
        web_app: WebAppPort,
        channels: ChannelLifecycleReconciler,
        tasks: TaskPostingReconciler,
        roles: RoleSyncReconciler,
        fanout: NotificationFanout,
        publisher: Optional[Publisher] = None,
        discord_config: Optional[DiscordConfig] = None,
        sync_config: Optional[SyncConfig] = None,
    ):
        self.gateway = gateway
        self.web_app = web_app
        self.channels = channels
        self.tasks = tasks
        self.roles = roles
        self.fanout = fanout
        self.publisher = publisher
        self.base_url = (discord_config or get_discord_config()).web_app_url
        self.sync_config = sync_config or get_sync_config()

    def handler_map(self) -> Dict[str, Handler]:
        return {
            "user-linked": self.handle_user_linked,
            "user-unlinked": self.handle_user_unlinked,
            "user-role-changed": self.handle_user_role_changed,
            "user-deactivated": self.handle_user_deactivated,
            "project-created": self.handle_project_created,
            "project-archived": self.handle_project_archived,
            "project-member-added": self.handle_project_member_added,
            "project-member-removed": self.handle_project_member_removed,
            "category-created": self.handle_category_created,
            "category-deleted": self.handle_category_deleted,
            "category-sync": self.handle_category_sync,
            "task-created": self.handle_task_created,
            "task-updated": self.handle_task_updated,
            "task-deleted": self.handle_task_deleted,
            "task-assigned": self.handle_task_assigned,
            "task-completed": self.handle_task_completed,
            "comment-added": self.handle_comment_added,
            "file-uploaded": self.handle_file_uploaded,
            "time-logged": self.handle_time_logged,
            "verify-guild": self.handle_verify_guild,
        }

    # =========================================================================
    # Users
    # =========================================================================

    async def handle_user_linked(self, event: ev.UserLinked) -> SyncOutcome:
        return await self.roles.on_user_linked(event.tenant_id, event.user_id, event.discord_user_id)

    async def handle_user_unlinked(self, event: ev.UserUnlinked) -> SyncOutcome:
        return await self.roles.on_user_unlinked(event.tenant_id, event.discord_user_id)

    async def handle_user_role_changed(self, event: ev.UserRoleChanged) -> SyncOutcome:
        return await self.roles.on_role_changed(event.tenant_id, event.discord_user_id, event.new_role)

    async def handle_user_deactivated(self, event: ev.UserDeactivated) -> SyncOutcome:
        return await self.roles.on_user_unlinked(event.tenant_id, event.discord_user_id)

    # =========================================================================
    # Projects
    # =========================================================================

    async def handle_project_created(self, event: ev.ProjectCreated) -> SyncOutcome:
        result = await self.channels.ensure_project_channels(event.tenant_id, event.project_id, event.name)
        return result.outcome

    async def handle_project_archived(self, event: ev.ProjectArchived) -> SyncOutcome:
        return await self.channels.archive_project_channel(event.tenant_id, event.project_id, event.channel_id)

    async def handle_project_member_added(self, event: ev.ProjectMemberAdded) -> SyncOutcome:
        return await self.roles.on_project_member_changed(
            event.project_id, event.user_id, PermissionAction.GRANT, event.discord_user_id
        )

    async def handle_project_member_removed(self, event: ev.ProjectMemberRemoved) -> SyncOutcome:
        return await self.roles.on_project_member_changed(
            event.project_id, event.user_id, PermissionAction.REVOKE, event.discord_user_id
        )

    # =========================================================================
    # Categories
    # =========================================================================

    async def handle_category_created(self, event: ev.CategoryCreated) -> SyncOutcome:
        guild_id = await self.channels.guild_for_tenant(event.tenant_id)
        if not guild_id:
            log.info(f"Tenant {event.tenant_id} has no linked guild, skipping category {event.category_id}")
            return SyncOutcome.skipped("tenant has no guild")
        spec = ev.CategorySyncItem(id=event.category_id, name=event.name, type=event.type).to_spec()
        report = await self.channels.sync_category_structure(guild_id, event.tenant_id, [spec])
        return report.outcome

    async def handle_category_deleted(self, event: ev.CategoryDeleted) -> SyncOutcome:
        return await self.channels.delete_category(event.tenant_id, event.category_id, event.discord_category_id)

    async def handle_category_sync(self, event: ev.CategorySync) -> SyncOutcome:
        report = await self.channels.sync_category_structure(
            event.guild_id, event.tenant_id, [item.to_spec() for item in event.categories]
        )
        return report.outcome

    # =========================================================================
    # Tasks
    # =========================================================================

    async def _project_name(self, project_id: str) -> Optional[str]:
        project = await self.web_app.get_project(project_id)
        return project.name if project else None

    async def _task_record(self, event: ev._TaskEvent, title: Optional[str] = None) -> TaskRecord:
        task = await self.web_app.get_task(event.task_id)
        if task is not None:
            return task
        return TaskRecord(
            id=event.task_id,
            project_id=event.project_id,
            title=title or event.task_id,
            tenant_id=event.tenant_id,
            project_name=await self._project_name(event.project_id),
        )

    async def handle_task_created(self, event: ev.TaskCreated) -> SyncOutcome:
        task = TaskRecord(
            id=event.task_id,
            project_id=event.project_id,
            title=event.title,
            project_name=await self._project_name(event.project_id),
            tenant_id=event.tenant_id,
            description=event.description,
            status="TODO",
            priority=event.priority,
            deadline=event.deadline,
        )
        created_by = event.created_by_name or event.created_by
        posting = await self.tasks.on_task_created(task, created_by=created_by)
        if posting.is_skipped and posting.reason == "already posted":
            return posting
        if posting.is_warning and posting.retryable:
            # The notice goes out with the redelivery that posts the card
            return posting

        notice = await self.fanout.post_to_project(
            task_created_notice(task, self.base_url, created_by),
            ChannelTarget(task.project_id, ChannelKind.ACTIVITY),
        )
        return combine([posting, notice])

    async def handle_task_updated(self, event: ev.TaskUpdated) -> SyncOutcome:
        task = await self._task_record(event, event.title)
        overrides = {
            name: value for name, value in (
                ("title", event.title),
                ("description", event.description),
                ("status", event.status),
                ("priority", event.priority),
                ("deadline", event.deadline),
            ) if value is not None
        }
        if overrides:
            task = replace(task, **overrides)
        return await self.tasks.on_task_updated(task, updated_by=event.updated_by_name)

    async def handle_task_deleted(self, event: ev.TaskDeleted) -> SyncOutcome:
        return await self.tasks.on_task_deleted(event.task_id, event.project_id, event.title)

    async def handle_task_assigned(self, event: ev.TaskAssigned) -> SyncOutcome:
        task = await self._task_record(event, event.task_title)
        return await self.tasks.on_task_assigned(task, event.assignee_user_id, event.assignee_name)

    # =========================================================================
    # Activity
    # =========================================================================

    async def handle_task_completed(self, event: ev.TaskCompleted) -> SyncOutcome:
        task = await self._task_record(event, event.task_title)
        card = task_completed_card(task, self.base_url, event.completed_by_name or event.completed_by)
        return await self.fanout.post_to_project(card, ChannelTarget(event.project_id))

    async def handle_comment_added(self, event: ev.CommentAdded) -> SyncOutcome:
        card = comment_card(
            event.author_name,
            event.preview,
            self.base_url,
            event.project_id,
            event.task_id,
            task_title=event.task_title,
            project_name=await self._project_name(event.project_id),
        )
        return await self.fanout.post_to_project(card, ChannelTarget(event.project_id))

    async def handle_file_uploaded(self, event: ev.FileUploaded) -> SyncOutcome:
        card = file_card(event.file_name, event.file_size, self.base_url, event.project_id, event.uploaded_by_name)
        return await self.fanout.post_to_project(card, ChannelTarget(event.project_id))

    async def handle_time_logged(self, event: ev.TimeLogged) -> SyncOutcome:
        card = time_logged_card(
            event.minutes,
            event.date,
            self.base_url,
            event.project_id,
            user_name=event.user_name,
            task_title=event.task_title,
            description=event.description,
        )
        return await self.fanout.post_to_project(card, ChannelTarget(event.project_id))

    # =========================================================================
    # Request / Response
    # =========================================================================

    async def handle_verify_guild(self, event: ev.VerifyGuild) -> SyncOutcome:
        guild = await self.gateway.fetch_guild(event.guild_id)
        response: Dict[str, Any] = {
            "requestId": event.request_id,
            "ok": guild.success,
            "status": "guild-verified" if guild.success else "guild-not-found",
        }
        if guild.success:
            response["guildName"] = guild.name
        else:
            response["error"] = guild.error

        if self.publisher is None:
            log.warning("No publisher configured for verify responses")
            return SyncOutcome.skipped("no publisher")

        channel = ev.channel_for(ev.VERIFY_RESPONSE_TOPIC, self.sync_config.topic_prefix)
        await self.publisher(channel, response)
        log.info(f"Verify guild {event.guild_id}: {response['status']}")
        return SyncOutcome.ok()
