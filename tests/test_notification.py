from __future__ import annotations

from guildsync.sync.cards import MessageCard
from guildsync.sync.models import ChannelKind, GatewayErrorKind, ProjectChannelLink
from guildsync.sync.reconcilers.notification import ChannelTarget, resolve_project_channel
from tests.conftest import GUILD_ID, TENANT_ID

CARD = MessageCard(title="💬 Ny kommentar")


async def test_posts_to_requested_kind(fanout, channels, gateway) -> None:
    ids = (await channels.ensure_project_channels(TENANT_ID, "p1", "Villa")).channels

    outcome = await fanout.post_to_project(CARD, ChannelTarget("p1", ChannelKind.ACTIVITY))

    assert outcome.is_ok
    assert [m.card for m in gateway.messages_in(ids[ChannelKind.ACTIVITY])] == [CARD]


async def test_falls_back_to_general(fanout, gateway, store) -> None:
    general = gateway.add_channel(GUILD_ID, "villa")
    await store.upsert_project_channel(ProjectChannelLink("p1", ChannelKind.GENERAL, general, GUILD_ID))

    outcome = await fanout.post_to_project(CARD, ChannelTarget("p1", ChannelKind.ACTIVITY))

    assert outcome.is_ok
    assert len(gateway.messages_in(general)) == 1


async def test_no_fallback_when_disabled(store) -> None:
    await store.upsert_project_channel(ProjectChannelLink("p1", ChannelKind.GENERAL, "1", GUILD_ID))
    assert await resolve_project_channel(store, "p1", ChannelKind.TASKS, fallback=False) is None
    assert (await resolve_project_channel(store, "p1", ChannelKind.TASKS)).channel_id == "1"


async def test_no_channel_is_skipped(fanout) -> None:
    outcome = await fanout.post_to_project(CARD, ChannelTarget("nothing"))
    assert outcome.is_skipped


async def test_deleted_channel_is_skipped(fanout, gateway, store) -> None:
    await store.upsert_project_channel(ProjectChannelLink("p1", ChannelKind.ACTIVITY, "404", GUILD_ID))
    outcome = await fanout.post_to_project(CARD, ChannelTarget("p1"))
    assert outcome.is_skipped
    assert outcome.reason == "channel deleted"


async def test_transient_post_failure_is_retryable(fanout, gateway, store) -> None:
    channel_id = gateway.add_channel(GUILD_ID, "villa-aktivitet")
    await store.upsert_project_channel(ProjectChannelLink("p1", ChannelKind.ACTIVITY, channel_id, GUILD_ID))
    gateway.configure_failure("post_message", GatewayErrorKind.TRANSIENT, "503")

    outcome = await fanout.post_to_project(CARD, ChannelTarget("p1"))

    assert outcome.is_warning
    assert outcome.retryable


async def test_notify_reports_direct_separately(fanout, gateway, store, web_app) -> None:
    channel_id = gateway.add_channel(GUILD_ID, "villa-aktivitet")
    await store.upsert_project_channel(ProjectChannelLink("p1", ChannelKind.ACTIVITY, channel_id, GUILD_ID))
    web_app.add_user("u1", "Anna", TENANT_ID, discord_user_id="555")
    gateway.configure_failure("send_direct_message", GatewayErrorKind.PERMISSION, "Cannot send messages")

    result = await fanout.notify(CARD, ChannelTarget("p1"), direct_target="u1")

    assert result.channel.is_ok
    assert result.direct.is_warning
    assert result.outcome.is_ok


async def test_send_direct_uses_linked_account(fanout, gateway, web_app) -> None:
    web_app.add_user("u1", "Anna", TENANT_ID, discord_user_id="555")

    assert (await fanout.send_direct("u1", CARD)).is_ok
    assert gateway.direct_messages == [("555", CARD)]
    assert (await fanout.send_direct("u2", CARD)).is_skipped
