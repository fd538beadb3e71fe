# =============================================================================
# File: guildsync/infra/discord/interactions.py
# Description: discord.Interaction <-> InteractionRouter bridge
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional

import discord

from guildsync.config.logging_config import get_logger
from guildsync.sync import templates as t
from guildsync.sync.cards import InteractionReply
from guildsync.sync.interaction.codec import InteractionVerb, decode
from guildsync.sync.interaction.handlers import InteractionContext, InteractionRouter
from guildsync.infra.discord.rendering import build_modal, reply_kwargs

log = get_logger("guildsync.discord.interactions")

# Verbs answered with a modal; Discord forbids deferring before send_modal
MODAL_VERBS = frozenset({
    InteractionVerb.TIME_LOG,
    InteractionVerb.TASK_CREATE,
    InteractionVerb.NOTE_CREATE,
})

# Verbs whose reply replaces the message the component sits on
UPDATE_VERBS = frozenset({
    InteractionVerb.ASSIGN_USER,
    InteractionVerb.SELECT_PROJECTS,
    InteractionVerb.CONFIRM_SYNC,
    InteractionVerb.CANCEL_SYNC,
})


def _modal_fields(data: Dict[str, Any]) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for row in data.get("components", []):
        # Action rows carry "components", label wrappers carry "component"
        children = row.get("components") or ([row["component"]] if "component" in row else [])
        for child in children:
            if "custom_id" in child and "value" in child:
                fields[child["custom_id"]] = child["value"] or ""
    return fields


def context_from_interaction(interaction: discord.Interaction) -> Optional[InteractionContext]:
    """Component clicks, selects and modal submits only; anything else returns None."""
    if interaction.type not in (discord.InteractionType.component, discord.InteractionType.modal_submit):
        return None
    data = interaction.data or {}
    custom_id = data.get("custom_id")
    if not custom_id:
        return None

    return InteractionContext(
        custom_id=custom_id,
        user_id=str(interaction.user.id),
        guild_id=str(interaction.guild_id) if interaction.guild_id else None,
        channel_id=str(interaction.channel_id) if interaction.channel_id else None,
        display_name=interaction.user.display_name,
        values=tuple(data.get("values", ())),
        fields=_modal_fields(data) if interaction.type == discord.InteractionType.modal_submit else {},
    )


class InteractionBridge:
    """
    Receives raw Discord interactions, runs them through the router and
    renders the reply.

    Everything except modal-opening verbs is deferred first so slow writes
    (setup wizard, web-app updates) never hit the 3 second ack window.
    """

    def __init__(self, router: InteractionRouter):
        self.router = router

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        ctx = context_from_interaction(interaction)
        if ctx is None:
            return
        verb = decode(ctx.custom_id).verb
        if verb is InteractionVerb.NOOP:
            return

        try:
            if verb in MODAL_VERBS:
                reply = await self.router.handle(ctx)
                await self.respond(interaction, reply)
                return

            deferred_update = verb in UPDATE_VERBS
            if deferred_update:
                await interaction.response.defer()
            else:
                await interaction.response.defer(ephemeral=True, thinking=True)

            reply = await self.router.handle(ctx)
            await self.send_deferred(interaction, reply, deferred_update)
        except discord.NotFound:
            log.warning(f"Interaction {ctx.custom_id!r} expired before it could be answered")
        except discord.HTTPException as e:
            log.warning(f"Could not answer interaction {ctx.custom_id!r}: {e}")

    async def on_setup_command(self, interaction: discord.Interaction) -> None:
        reply = await self.router.setup_command(
            str(interaction.user.id),
            str(interaction.guild_id) if interaction.guild_id else None,
            interaction.user.display_name,
        )
        await self.respond(interaction, reply)

    async def respond(self, interaction: discord.Interaction, reply: Optional[InteractionReply]) -> None:
        """Answer an interaction that has not been acknowledged yet."""
        if reply is None:
            return
        if reply.modal is not None:
            await interaction.response.send_modal(build_modal(reply.modal))
            return

        kwargs = reply_kwargs(reply)
        if reply.update:
            await interaction.response.edit_message(**kwargs)
        else:
            await interaction.response.send_message(ephemeral=reply.ephemeral, **kwargs)
        _stop_view(kwargs)

    async def send_deferred(
        self,
        interaction: discord.Interaction,
        reply: Optional[InteractionReply],
        deferred_update: bool,
    ) -> None:
        if reply is None:
            return
        if reply.modal is not None:
            # A modal can only be the first response
            log.error(f"Modal reply after defer for {interaction.data}")
            reply = InteractionReply(card=t.error_card(t.COULD_NOT_COMPLETE))

        kwargs = reply_kwargs(reply)
        if deferred_update and reply.update:
            await interaction.edit_original_response(**kwargs)
        else:
            await interaction.followup.send(ephemeral=reply.ephemeral, **kwargs)
        _stop_view(kwargs)


def _stop_view(kwargs: Dict[str, Any]) -> None:
    view = kwargs.get("view")
    if view is not None:
        view.stop()
