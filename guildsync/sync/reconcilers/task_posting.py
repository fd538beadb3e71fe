# =============================================================================
# File: guildsync/sync/reconcilers/task_posting.py
# Description: Keeps exactly one live task card per task in the tasks channel
# =============================================================================
"""
Per-task state machine keyed by ``TaskPostingLink``:

    NoPosting --created--> Posted --updated--> Posted' --deleted--> NoPosting

Updates are delete-then-repost rather than edits, so the newest state is
always the latest message in the channel.
"""

from __future__ import annotations

from typing import Optional

from guildsync.config.discord_config import DiscordConfig, get_discord_config
from guildsync.config.logging_config import get_logger
from guildsync.sync.cards import MessageCard
from guildsync.sync.models import ChannelKind, ProjectChannelLink, TaskPostingLink, TaskRecord
from guildsync.sync.outcome import SyncOutcome
from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.reconcilers.notification import ChannelTarget, NotificationFanout, resolve_project_channel
from guildsync.sync.templates import (
    task_assigned_card,
    task_assigned_dm,
    task_card,
    task_removed_card,
    task_updated_card,
)

log = get_logger("guildsync.reconcilers.tasks")


class TaskPostingReconciler:

    def __init__(
        self,
        gateway: ChatGatewayPort,
        store: CorrelationStorePort,
        fanout: NotificationFanout,
        discord_config: Optional[DiscordConfig] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.fanout = fanout
        self.base_url = (discord_config or get_discord_config()).web_app_url

    async def _tasks_channel(self, project_id: str) -> Optional[ProjectChannelLink]:
        link = await resolve_project_channel(self.store, project_id, ChannelKind.TASKS, fallback=False)
        if link is None:
            log.warning(f"Tasks channel of project {project_id} is unresolvable")
        return link

    async def _post(self, task: TaskRecord, channel: ProjectChannelLink, card: MessageCard) -> SyncOutcome:
        posted = await self.gateway.post_message(channel.channel_id, card)
        if posted.success:
            await self.store.upsert_task_posting(TaskPostingLink(
                task_id=task.id, message_id=posted.external_id, channel_id=channel.channel_id,
            ))
            return SyncOutcome.ok()
        if posted.not_found:
            log.warning(f"Tasks channel {channel.channel_id} was deleted externally")
            return SyncOutcome.skipped("tasks channel deleted")
        return posted.to_warning(f"post task {task.id}")

    # =========================================================================
    # Transitions
    # =========================================================================

    async def on_task_created(self, task: TaskRecord, created_by: Optional[str] = None) -> SyncOutcome:
        if await self.store.get_task_posting(task.id) is not None:
            return SyncOutcome.skipped("already posted")

        channel = await self._tasks_channel(task.project_id)
        if channel is None:
            return SyncOutcome.skipped("tasks channel unresolvable")

        return await self._post(task, channel, task_card(task, self.base_url, created_by=created_by))

    async def on_task_updated(self, task: TaskRecord, updated_by: Optional[str] = None) -> SyncOutcome:
        prior = await self.store.get_task_posting(task.id)

        if prior is not None:
            removed = await self.gateway.delete_message(prior.channel_id, prior.message_id)
            if not removed.success:
                # Keep the link so a redelivery deletes the prior card before reposting
                log.warning(f"Could not delete prior card {prior.message_id} of task {task.id}: {removed.error}")
                return removed.to_warning("delete prior card")

        channel = await self._tasks_channel(task.project_id)
        if channel is None:
            if prior is not None:
                await self.store.delete_task_posting(task.id)
            return SyncOutcome.skipped("tasks channel unresolvable")

        posted = await self._post(task, channel, task_updated_card(task, self.base_url, updated_by))
        if not posted.is_ok and prior is not None:
            # The stored message id was just deleted
            await self.store.delete_task_posting(task.id)
        return posted

    async def on_task_deleted(self, task_id: str, project_id: str, title: Optional[str] = None) -> SyncOutcome:
        prior = await self.store.get_task_posting(task_id)

        if prior is not None:
            removed = await self.gateway.delete_message(prior.channel_id, prior.message_id)
            if not removed.success:
                log.warning(f"Could not delete card {prior.message_id} of task {task_id}: {removed.error}")
                return removed.to_warning("delete task card")
            await self.store.delete_task_posting(task_id)

        channel = await self._tasks_channel(project_id)
        if channel is None:
            return SyncOutcome.skipped("tasks channel unresolvable")

        notice = await self.gateway.post_message(channel.channel_id, task_removed_card(task_id, title))
        if notice.success:
            return SyncOutcome.ok()
        if notice.not_found:
            return SyncOutcome.skipped("tasks channel deleted")
        return notice.to_warning("post removal notice")

    async def on_task_assigned(
        self,
        task: TaskRecord,
        assignee_user_id: str,
        assignee_name: Optional[str] = None,
    ) -> SyncOutcome:
        """Assignment notice in the tasks channel plus a DM; the posting is untouched."""
        result = await self.fanout.notify(
            task_assigned_card(task, assignee_name, self.base_url),
            ChannelTarget(task.project_id, ChannelKind.TASKS, fallback=False),
            direct_target=assignee_user_id,
            direct_card=task_assigned_dm(task, self.base_url),
        )
        if result.direct is not None and not result.direct.is_ok:
            log.info(f"Assignment DM for task {task.id} not delivered: {result.direct}")
        return result.outcome
