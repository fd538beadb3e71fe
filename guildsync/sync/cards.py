# =============================================================================
# File: guildsync/sync/cards.py
# Description: Transport-neutral message, component and modal descriptions.
#              The Discord adapter turns these into embeds, views and modals.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class ButtonStyle(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUCCESS = "success"
    DANGER = "danger"
    LINK = "link"


@dataclass(frozen=True)
class CardField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class ButtonSpec:
    label: str
    custom_id: Optional[str] = None
    style: ButtonStyle = ButtonStyle.SECONDARY
    emoji: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class SelectOption:
    label: str
    value: str
    description: Optional[str] = None


@dataclass(frozen=True)
class SelectSpec:
    custom_id: str
    options: Tuple[SelectOption, ...]
    placeholder: Optional[str] = None
    min_values: int = 1
    max_values: int = 1


@dataclass(frozen=True)
class MessageCard:
    """One rich message: an embed plus rows of components"""
    title: str
    description: Optional[str] = None
    color: Optional[int] = None
    url: Optional[str] = None
    fields: Tuple[CardField, ...] = ()
    footer: Optional[str] = None
    timestamp: Optional[datetime] = None
    button_rows: Tuple[Tuple[ButtonSpec, ...], ...] = ()
    select: Optional[SelectSpec] = None


@dataclass(frozen=True)
class TextInputSpec:
    custom_id: str
    label: str
    required: bool = True
    paragraph: bool = False
    placeholder: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ModalSpec:
    custom_id: str
    title: str
    inputs: Tuple[TextInputSpec, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class InteractionReply:
    """
    What an interaction handler wants shown to the user.

    Exactly one of ``card``/``content``/``modal`` is normally set. ``update``
    replaces the message the component lives on instead of replying.
    """
    card: Optional[MessageCard] = None
    content: Optional[str] = None
    modal: Optional[ModalSpec] = None
    ephemeral: bool = True
    update: bool = False
