# =============================================================================
# File: guildsync/sync/templates.py
# Description: Typed message templates (Swedish UI) rendered as MessageCards
# =============================================================================
"""
All user-visible Discord text lives here. Templates are pure functions from
records to ``MessageCard`` / ``ModalSpec`` so reconcilers and interaction
handlers never build embeds by hand.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence, Tuple

from guildsync.sync.cards import (
    ButtonSpec,
    ButtonStyle,
    CardField,
    MessageCard,
    ModalSpec,
    SelectOption,
    SelectSpec,
    TextInputSpec,
)
from guildsync.sync.interaction.codec import InteractionVerb, encode
from guildsync.sync.models import (
    ChannelKind,
    ProjectMemberRecord,
    ProjectRecord,
    SetupReport,
    TaskRecord,
)

# =============================================================================
# Constants
# =============================================================================

class Colors:
    TASK = 0x3B82F6
    SUCCESS = 0x22C55E
    ERROR = 0xEF4444
    WARNING = 0xF59E0B
    PROJECT = 0x8B5CF6
    TIME = 0x06B6D4
    COMMENT = 0x6B7280
    FILE = 0x6366F1


STATUS_EMOJI = {
    "TODO": "🔴",
    "IN_PROGRESS": "🟡",
    "DONE": "🟢",
}

STATUS_LABELS = {
    "TODO": "Att göra",
    "IN_PROGRESS": "Pågående",
    "DONE": "Klar",
}

PRIORITY_LABELS = {
    "LOW": "Låg",
    "MEDIUM": "Medium",
    "HIGH": "Hög",
    "URGENT": "Brådskande",
}

FOOTER_BRAND = "ArbetsYtan — Projektledning för hantverkare"
MAX_SELECT_OPTIONS = 25
PREVIEW_LENGTH = 200
CHANNEL_NAME_MAX_LENGTH = 100
FALLBACK_CHANNEL_NAME = "projekt"

COULD_NOT_COMPLETE = "Kunde inte slutföra åtgärden. Försök igen senare."
LINK_ACCOUNT_REQUIRED = (
    "Du behöver koppla ditt Discord-konto till ArbetsYtan för att göra detta. "
    "Gå till Inställningar i webbappen och välj Koppla Discord."
)
NOT_ALLOWED = "Du har inte behörighet att göra detta."
SYNC_CANCELLED = "Synkning avbruten."


# =============================================================================
# URLs & Names
# =============================================================================

def project_url(base_url: str, project_id: str) -> str:
    return f"{base_url.rstrip('/')}/sv/projects/{project_id}"


def task_url(base_url: str, project_id: str, task_id: str) -> str:
    return f"{project_url(base_url, project_id)}?task={task_id}"


_SWEDISH_FOLD = str.maketrans({"å": "a", "ä": "a", "ö": "o", "é": "e", "ü": "u"})
_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_DASH_RUNS = re.compile(r"-{2,}")


def to_channel_name(name: str) -> str:
    """
    Discord-safe channel slug.

    Lowercase, Swedish letters folded to ASCII, anything outside
    ``[a-z0-9-]`` collapsed to a single dash, trimmed, capped at 100 chars.
    An empty result becomes ``projekt``.
    """
    slug = (name or "").lower().translate(_SWEDISH_FOLD)
    slug = unicodedata.normalize("NFKD", slug).encode("ascii", "ignore").decode("ascii")
    slug = _INVALID_CHARS.sub("-", slug)
    slug = _DASH_RUNS.sub("-", slug).strip("-")
    slug = slug[:CHANNEL_NAME_MAX_LENGTH].rstrip("-")
    return slug or FALLBACK_CHANNEL_NAME


def channel_name_for(project_name: str, kind: ChannelKind) -> str:
    slug = to_channel_name(project_name)
    suffix = kind.name_suffix
    if not suffix:
        return slug
    # Keep the suffix when the slug is long
    room = CHANNEL_NAME_MAX_LENGTH - len(suffix) - 1
    return f"{slug[:room].rstrip('-')}-{suffix}"


def truncate(text: Optional[str], limit: int = PREVIEW_LENGTH) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def format_file_size(size: Optional[int]) -> str:
    if size is None or size < 0:
        return "Okänd"
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def format_minutes(minutes: int) -> str:
    hours, rest = divmod(max(int(minutes), 0), 60)
    if hours and rest:
        return f"{hours}h {rest}min"
    if hours:
        return f"{hours}h"
    return f"{rest}min"


def format_date(value: Optional[date | str]) -> str:
    if value is None:
        return "Ingen"
    if isinstance(value, str):
        return value[:10]
    return value.isoformat()


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Task Cards
# =============================================================================

def task_buttons(task: TaskRecord, base_url: str) -> Tuple[Tuple[ButtonSpec, ...], ...]:
    actions = (
        ButtonSpec("Visa detaljer", encode(InteractionVerb.TASK_VIEW, [task.id]), ButtonStyle.PRIMARY, "🔍"),
        ButtonSpec("Tilldela", encode(InteractionVerb.TASK_ASSIGN, [task.id]), ButtonStyle.SECONDARY, "👤"),
        ButtonSpec("Klar", encode(InteractionVerb.TASK_COMPLETE, [task.id]), ButtonStyle.SUCCESS, "✅"),
        ButtonSpec("Öppna i webb", style=ButtonStyle.LINK, emoji="🌐",
                   url=task_url(base_url, task.project_id, task.id)),
    )
    time_row = (
        ButtonSpec("Logga tid", encode(InteractionVerb.TIME_LOG, [task.id]), ButtonStyle.PRIMARY, "⏱️"),
        ButtonSpec("Fäst", encode(InteractionVerb.TASK_PIN, [task.id]), ButtonStyle.SECONDARY, "📌"),
    )
    return actions, time_row


def _task_fields(task: TaskRecord) -> Tuple[CardField, ...]:
    status = (task.status or "TODO").upper()
    priority = (task.priority or "MEDIUM").upper()
    fields: List[CardField] = [
        CardField("Status", f"{STATUS_EMOJI.get(status, '⚪')} {STATUS_LABELS.get(status, status)}"),
        CardField("Prioritet", PRIORITY_LABELS.get(priority, priority)),
    ]
    if task.assignees:
        fields.append(CardField("Tilldelad", ", ".join(task.assignees)))
    if task.deadline:
        fields.append(CardField("Deadline", format_date(task.deadline)))
    if task.project_name:
        fields.append(CardField("Projekt", task.project_name))
    return tuple(fields)


def task_card(
    task: TaskRecord,
    base_url: str,
    created_by: Optional[str] = None,
    with_buttons: bool = True,
) -> MessageCard:
    """The posting in the tasks channel, with action buttons"""
    return MessageCard(
        title=f"📋 {task.title}",
        description=truncate(task.description) or None,
        color=Colors.TASK,
        url=task_url(base_url, task.project_id, task.id),
        fields=_task_fields(task),
        footer=f"Skapad av {created_by}" if created_by else None,
        timestamp=_now(),
        button_rows=task_buttons(task, base_url) if with_buttons else (),
    )


def task_updated_card(task: TaskRecord, base_url: str, updated_by: Optional[str] = None) -> MessageCard:
    status = (task.status or "").upper()
    emoji = {"DONE": "✅", "IN_PROGRESS": "🔄"}.get(status, "📋")
    return MessageCard(
        title=f"{emoji} Uppgift uppdaterad: {task.title}",
        description=truncate(task.description) or None,
        color=Colors.SUCCESS if status == "DONE" else Colors.TASK,
        url=task_url(base_url, task.project_id, task.id),
        fields=_task_fields(task),
        footer=f"Uppdaterad av {updated_by}" if updated_by else None,
        timestamp=_now(),
        button_rows=task_buttons(task, base_url),
    )


def task_removed_card(task_id: str, title: Optional[str] = None) -> MessageCard:
    description = f"Uppgift `{task_id}` har tagits bort."
    if title:
        description = f"Uppgiften **{title}** (`{task_id}`) har tagits bort."
    return MessageCard(
        title="🗑️ Uppgift borttagen",
        description=description,
        color=Colors.ERROR,
        timestamp=_now(),
    )


def task_created_notice(task: TaskRecord, base_url: str, created_by: Optional[str] = None) -> MessageCard:
    """Short activity-feed line for a new task"""
    fields = (CardField("Projekt", task.project_name),) if task.project_name else ()
    return MessageCard(
        title=f"📋 Ny uppgift: {task.title}",
        color=Colors.TASK,
        url=task_url(base_url, task.project_id, task.id),
        fields=fields,
        footer=f"Skapad av {created_by}" if created_by else None,
        timestamp=_now(),
    )


def task_assigned_card(task: TaskRecord, assignee_name: Optional[str], base_url: str) -> MessageCard:
    return MessageCard(
        title=f"👤 Uppgift tilldelad: {task.title}",
        color=Colors.PROJECT,
        url=task_url(base_url, task.project_id, task.id),
        fields=(CardField("Tilldelad till", assignee_name or "Okänd"),),
        timestamp=_now(),
    )


def task_assigned_dm(task: TaskRecord, base_url: str) -> MessageCard:
    fields = (CardField("Projekt", task.project_name),) if task.project_name else ()
    return MessageCard(
        title="📋 Du har tilldelats en uppgift",
        description=f"**{task.title}**",
        color=Colors.WARNING,
        url=task_url(base_url, task.project_id, task.id),
        fields=fields,
        timestamp=_now(),
    )


def task_completed_card(task: TaskRecord, base_url: str, completed_by: Optional[str] = None) -> MessageCard:
    fields = (CardField("Projekt", task.project_name),) if task.project_name else ()
    return MessageCard(
        title=f"✅ Uppgift slutförd: {task.title}",
        color=Colors.SUCCESS,
        url=task_url(base_url, task.project_id, task.id),
        fields=fields,
        footer=f"Slutförd av {completed_by}" if completed_by else None,
        timestamp=_now(),
    )


# =============================================================================
# Activity Cards
# =============================================================================

def comment_card(
    author_name: str,
    preview: str,
    base_url: str,
    project_id: str,
    task_id: str,
    task_title: Optional[str] = None,
    project_name: Optional[str] = None,
) -> MessageCard:
    fields = [CardField("Uppgift", task_title or task_id)]
    if project_name:
        fields.append(CardField("Projekt", project_name))
    return MessageCard(
        title="💬 Ny kommentar",
        description=truncate(preview),
        color=Colors.COMMENT,
        url=task_url(base_url, project_id, task_id),
        fields=tuple(fields),
        footer=f"Av {author_name}",
        timestamp=_now(),
    )


def file_card(
    file_name: str,
    file_size: Optional[int],
    base_url: str,
    project_id: str,
    uploaded_by: Optional[str] = None,
) -> MessageCard:
    return MessageCard(
        title=f"📎 {file_name}",
        color=Colors.FILE,
        url=f"{project_url(base_url, project_id)}/files",
        fields=(CardField("Storlek", format_file_size(file_size)),),
        footer=f"Uppladdad av {uploaded_by}" if uploaded_by else None,
        timestamp=_now(),
    )


def time_logged_card(
    minutes: int,
    entry_date: date | str,
    base_url: str,
    project_id: str,
    user_name: Optional[str] = None,
    task_title: Optional[str] = None,
    description: Optional[str] = None,
) -> MessageCard:
    fields = [
        CardField("Tid", format_minutes(minutes)),
        CardField("Datum", format_date(entry_date)),
    ]
    if task_title:
        fields.append(CardField("Uppgift", task_title))
    return MessageCard(
        title="⏱️ Tidsrapport",
        description=truncate(description) or None,
        color=Colors.TIME,
        url=f"{project_url(base_url, project_id)}/time",
        fields=tuple(fields),
        footer=f"Rapporterad av {user_name}" if user_name else None,
        timestamp=_now(),
    )


# =============================================================================
# Project Hub
# =============================================================================

def hub_card(project_id: str, project_name: str, base_url: str) -> MessageCard:
    """Pinned welcome message in the project's general channel"""
    return MessageCard(
        title=f"🏠 {project_name}",
        description="Välkommen till projektkanalen! Använd knapparna nedan för att hantera uppgifter.",
        color=Colors.PROJECT,
        url=project_url(base_url, project_id),
        footer=FOOTER_BRAND,
        button_rows=((
            ButtonSpec("Skapa uppgift", encode(InteractionVerb.TASK_CREATE, [project_id]), ButtonStyle.PRIMARY, "➕"),
            ButtonSpec("Skapa anteckning", encode(InteractionVerb.NOTE_CREATE, [project_id]),
                       ButtonStyle.SECONDARY, "📝"),
            ButtonSpec("Öppna i webb", style=ButtonStyle.LINK, emoji="🌐", url=project_url(base_url, project_id)),
        ),),
    )


# =============================================================================
# Generic Replies
# =============================================================================

def error_card(message: str, details: Optional[str] = None) -> MessageCard:
    fields = (CardField("Detaljer", details, inline=False),) if details else ()
    return MessageCard(title="❌ Fel", description=message, color=Colors.ERROR, fields=fields)


def success_card(message: str) -> MessageCard:
    return MessageCard(title="✅ Klart", description=message, color=Colors.SUCCESS)


# =============================================================================
# Assignment
# =============================================================================

def assign_select_card(task: TaskRecord, members: Sequence[ProjectMemberRecord]) -> MessageCard:
    options = tuple(
        SelectOption(label=m.name[:100], value=m.user_id)
        for m in list(members)[:MAX_SELECT_OPTIONS]
    )
    return MessageCard(
        title=f"👤 Tilldela: {task.title}",
        description="Välj vem som ska ansvara för uppgiften.",
        color=Colors.PROJECT,
        select=SelectSpec(
            custom_id=encode(InteractionVerb.ASSIGN_USER, [task.id]),
            options=options,
            placeholder="Välj person att tilldela",
        ),
    )


# =============================================================================
# Onboarding
# =============================================================================

def onboarding_card() -> MessageCard:
    return MessageCard(
        title="👋 Välkommen till ArbetsYtan",
        description=(
            "Koppla era projekt till den här servern.\n\n"
            "• Varje projekt får: #allmänt, #uppgifter, #filer och #aktivitet\n"
            "• Endast projektmedlemmar ser projektets kanaler"
        ),
        color=Colors.PROJECT,
        footer=FOOTER_BRAND,
        button_rows=((
            ButtonSpec("Kom igång", encode(InteractionVerb.START_ONBOARDING), ButtonStyle.PRIMARY, "🚀"),
        ),),
    )


def project_select_card(projects: Sequence[ProjectRecord]) -> MessageCard:
    projects = list(projects)[:MAX_SELECT_OPTIONS]
    options = tuple(
        SelectOption(label=p.name[:100], value=p.id, description=p.address[:100] if p.address else None)
        for p in projects
    )
    return MessageCard(
        title="📁 Välj projekt att koppla",
        description="Välj vilka projekt som ska få egna kanaler på servern.",
        color=Colors.PROJECT,
        select=SelectSpec(
            custom_id=encode(InteractionVerb.SELECT_PROJECTS),
            options=options,
            placeholder="Välj projekt att koppla...",
            min_values=1,
            max_values=max(len(options), 1),
        ),
    )


def confirm_sync_card(
    projects: Sequence[ProjectRecord],
    confirm_token: str,
    overflow_count: int = 0,
) -> MessageCard:
    lines = "\n".join(f"• {p.name}" for p in projects)
    description = f"Följande projekt kommer att få kanaler:\n\n{lines}"
    if overflow_count:
        description += (
            f"\n\n⚠️ {overflow_count} projekt fick inte plats i den här omgången. "
            "Kör synkningen igen för att koppla dem."
        )
    return MessageCard(
        title="❓ Bekräfta synkning",
        description=description,
        color=Colors.WARNING,
        button_rows=((
            ButtonSpec("Bekräfta", confirm_token, ButtonStyle.SUCCESS, "✅"),
            ButtonSpec("Avbryt", encode(InteractionVerb.CANCEL_SYNC), ButtonStyle.DANGER, "✖️"),
        ),),
    )


def setup_summary_card(report: SetupReport) -> MessageCard:
    total = report.success_count + report.failure_count
    complete = report.failure_count == 0
    parts = [f"**{report.success_count}** av **{total}** projekt synkades!"]
    if report.succeeded:
        parts.append("**Lyckades:**\n" + "\n".join(f"✅ {name}" for _, name in report.succeeded))
    if report.failed:
        parts.append("**Misslyckades:**\n" + "\n".join(f"❌ {name}: {reason}" for _, name, reason in report.failed))
    return MessageCard(
        title="✅ Synkning klar!" if complete else "⚠️ Synkning delvis klar",
        description="\n\n".join(parts),
        color=Colors.SUCCESS if complete else Colors.WARNING,
        footer=FOOTER_BRAND,
    )


# =============================================================================
# Modals
# =============================================================================

def time_log_modal(task_id: str) -> ModalSpec:
    return ModalSpec(
        custom_id=encode(InteractionVerb.TIME_LOG_MODAL, [task_id]),
        title="Logga arbetstid",
        inputs=(
            TextInputSpec("hours", "Antal timmar", placeholder="t.ex. 2.5", max_length=5),
            TextInputSpec("date", "Datum (valfritt)", required=False, placeholder="YYYY-MM-DD", max_length=10),
            TextInputSpec("description", "Beskrivning", required=False, paragraph=True, max_length=500),
        ),
    )


def task_create_modal(project_id: str) -> ModalSpec:
    return ModalSpec(
        custom_id=encode(InteractionVerb.TASK_CREATE_MODAL, [project_id]),
        title="Skapa uppgift",
        inputs=(
            TextInputSpec("title", "Titel", max_length=200),
            TextInputSpec("description", "Beskrivning", required=False, paragraph=True, max_length=1000),
            TextInputSpec("deadline", "Deadline (valfritt)", required=False, placeholder="YYYY-MM-DD",
                          max_length=10),
        ),
    )


def note_create_modal(project_id: str) -> ModalSpec:
    return ModalSpec(
        custom_id=encode(InteractionVerb.NOTE_CREATE_MODAL, [project_id]),
        title="Skapa anteckning",
        inputs=(
            TextInputSpec("title", "Titel", max_length=200),
            TextInputSpec("content", "Innehåll", paragraph=True, max_length=2000),
        ),
    )



# =============================================================================
# Interaction Messages
# =============================================================================

TASK_NOT_FOUND = "Uppgiften hittades inte."
PROJECT_NOT_FOUND = "Projektet hittades inte."
NO_MEMBERS_TO_ASSIGN = "Inga projektmedlemmar hittades att tilldela."
NO_ACTIVE_PROJECTS = "Inga aktiva projekt hittades."
NO_PROJECTS_SELECTED = "Inga projekt att synka."
NO_POSTING_TO_PIN = "Uppgiften har inget inlägg att fästa."
NOT_IN_GUILD = "Det här fungerar bara i en server."
INVALID_HOURS = "Ogiltigt antal timmar. Ange ett tal större än 0 och högst 24."
INVALID_DATE = "Ogiltigt datum. Använd formatet YYYY-MM-DD."
TITLE_REQUIRED = "Titel krävs."


def task_already_done(title: str) -> str:
    return f'Uppgiften "{title}" är redan markerad som klar.'


def task_marked_done(title: str) -> str:
    return f'Uppgiften "{title}" markerades som klar!'


def task_assigned_to(title: str, name: str) -> str:
    return f'Uppgiften "{title}" tilldelades {name}.'


def time_logged_reply(minutes: int, title: str) -> str:
    return f"Loggade {format_minutes(minutes)} på \"{title}\"."


def task_created_reply(title: str) -> str:
    return f'Uppgiften "{title}" skapades.'


def note_created_reply(title: str) -> str:
    return f'Anteckningen "{title}" skapades.'
