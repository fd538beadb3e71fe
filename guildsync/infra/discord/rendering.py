# =============================================================================
# File: guildsync/infra/discord/rendering.py
# Description: MessageCard / ModalSpec -> discord.Embed, discord.ui.View, Modal
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional

import discord

from guildsync.sync.cards import ButtonStyle, InteractionReply, MessageCard, ModalSpec

_BUTTON_STYLES = {
    ButtonStyle.PRIMARY: discord.ButtonStyle.primary,
    ButtonStyle.SECONDARY: discord.ButtonStyle.secondary,
    ButtonStyle.SUCCESS: discord.ButtonStyle.success,
    ButtonStyle.DANGER: discord.ButtonStyle.danger,
    ButtonStyle.LINK: discord.ButtonStyle.link,
}

EMBED_DESCRIPTION_LIMIT = 4096
EMBED_FIELD_VALUE_LIMIT = 1024


def build_embed(card: MessageCard) -> discord.Embed:
    embed = discord.Embed(
        title=card.title[:256],
        description=card.description[:EMBED_DESCRIPTION_LIMIT] if card.description else None,
        color=card.color,
        url=card.url,
        timestamp=card.timestamp,
    )
    for f in card.fields:
        embed.add_field(name=f.name[:256], value=(f.value or "-")[:EMBED_FIELD_VALUE_LIMIT], inline=f.inline)
    if card.footer:
        embed.set_footer(text=card.footer[:2048])
    return embed


def build_view(card: MessageCard) -> Optional[discord.ui.View]:
    """Components only; clicks are routed globally through on_interaction."""
    if not card.button_rows and card.select is None:
        return None

    view = discord.ui.View(timeout=None)
    row = 0
    for buttons in card.button_rows:
        for spec in buttons:
            if spec.style == ButtonStyle.LINK:
                item = discord.ui.Button(label=spec.label, style=discord.ButtonStyle.link,
                                         url=spec.url, emoji=spec.emoji, row=row)
            else:
                item = discord.ui.Button(label=spec.label, style=_BUTTON_STYLES[spec.style],
                                         custom_id=spec.custom_id, emoji=spec.emoji, row=row)
            view.add_item(item)
        row += 1

    if card.select is not None:
        select = card.select
        view.add_item(discord.ui.Select(
            custom_id=select.custom_id,
            placeholder=select.placeholder,
            min_values=select.min_values,
            max_values=select.max_values,
            options=[
                discord.SelectOption(label=o.label, value=o.value, description=o.description)
                for o in select.options
            ],
            row=row,
        ))
    return view


def build_modal(spec: ModalSpec) -> discord.ui.Modal:
    modal = discord.ui.Modal(title=spec.title[:45], custom_id=spec.custom_id, timeout=None)
    for item in spec.inputs:
        modal.add_item(discord.ui.TextInput(
            label=item.label,
            custom_id=item.custom_id,
            style=discord.TextStyle.paragraph if item.paragraph else discord.TextStyle.short,
            required=item.required,
            placeholder=item.placeholder,
            min_length=item.min_length,
            max_length=item.max_length,
        ))
    return modal


def message_kwargs(card: MessageCard) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"embed": build_embed(card)}
    view = build_view(card)
    if view is not None:
        kwargs["view"] = view
    return kwargs


def reply_kwargs(reply: InteractionReply) -> Dict[str, Any]:
    """Keyword arguments for send_message / edit_message of an interaction response"""
    kwargs: Dict[str, Any] = {}
    if reply.card is not None:
        kwargs.update(message_kwargs(reply.card))
    if reply.content is not None:
        kwargs["content"] = reply.content
    if reply.update:
        # Replacing a component message: drop its old embed and components
        kwargs.setdefault("embed", None)
        kwargs.setdefault("view", None)
    return kwargs
