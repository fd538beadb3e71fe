# =============================================================================
# File: guildsync/sync/reconcilers/notification.py
# Description: Channel post plus optional direct message fan-out
# =============================================================================

from __future__ import annotations

from typing import NamedTuple, Optional

from guildsync.config.logging_config import get_logger
from guildsync.sync.cards import MessageCard
from guildsync.sync.models import ChannelKind, FanoutResult, ProjectChannelLink
from guildsync.sync.outcome import SyncOutcome
from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.ports.web_app_port import WebAppPort

log = get_logger("guildsync.reconcilers.notification")


class ChannelTarget(NamedTuple):
    project_id: str
    kind: ChannelKind = ChannelKind.ACTIVITY
    fallback: bool = True


async def resolve_project_channel(
    store: CorrelationStorePort,
    project_id: str,
    kind: ChannelKind,
    fallback: bool = True,
) -> Optional[ProjectChannelLink]:
    """Live channel of the requested kind, else GENERAL when ``fallback``."""
    links = await store.get_project_channels(project_id)
    link = links.get(kind)
    if link is not None and not link.archived:
        return link
    if fallback and kind != ChannelKind.GENERAL:
        general = links.get(ChannelKind.GENERAL)
        if general is not None and not general.archived:
            return general
    return None


class NotificationFanout:
    """Posts a card to a project channel and, independently, DMs a user."""

    def __init__(self, gateway: ChatGatewayPort, store: CorrelationStorePort, web_app: WebAppPort):
        self.gateway = gateway
        self.store = store
        self.web_app = web_app

    async def notify(
        self,
        card: MessageCard,
        channel_target: ChannelTarget,
        direct_target: Optional[str] = None,
        direct_card: Optional[MessageCard] = None,
    ) -> FanoutResult:
        result = FanoutResult(channel=await self.post_to_project(card, channel_target))
        if direct_target:
            result.direct = await self.send_direct(direct_target, direct_card or card)
        return result

    async def post_to_project(self, card: MessageCard, target: ChannelTarget) -> SyncOutcome:
        link = await resolve_project_channel(self.store, target.project_id, target.kind, target.fallback)
        if link is None:
            log.info(f"No {target.kind.value} channel for project {target.project_id}, skipping notification")
            return SyncOutcome.skipped(f"no {target.kind.value} channel")

        posted = await self.gateway.post_message(link.channel_id, card)
        if posted.success:
            return SyncOutcome.ok()
        if posted.not_found:
            log.warning(f"Channel {link.channel_id} of project {target.project_id} no longer exists")
            return SyncOutcome.skipped("channel deleted")
        log.warning(f"Notification to {link.channel_id} failed: {posted.error}")
        return posted.to_warning(f"post to {target.kind.value} channel")

    async def send_direct(self, user_id: str, card: MessageCard) -> SyncOutcome:
        """DM a user by internal id. Never raises."""
        try:
            external_id = await self.web_app.get_linked_external_id(user_id)
            if not external_id:
                log.debug(f"User {user_id} has no linked Discord account, no DM")
                return SyncOutcome.skipped("no linked account")

            sent = await self.gateway.send_direct_message(external_id, card)
        except Exception as e:
            log.warning(f"Direct message to user {user_id} failed: {e}")
            return SyncOutcome.warning(f"direct message: {e}")

        if not sent.success:
            log.warning(f"Direct message to user {user_id} failed: {sent.error}")
            return sent.to_warning("direct message")
        return SyncOutcome.ok()
