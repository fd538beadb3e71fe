# =============================================================================
# File: guildsync/sync/interaction/handlers.py
# Description: Button, select and modal handlers for Discord interactions
# =============================================================================
"""
The router is transport-neutral: the Discord bridge turns a component or
modal submit into an ``InteractionContext`` and renders the returned
``InteractionReply``. All workflow state travels in the custom_id.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Dict, Optional, Tuple

from guildsync.common.exceptions.exceptions import (
    ConflictError,
    GuildSyncException,
    InteractionTokenError,
    ValidationError,
)
from guildsync.config.discord_config import DiscordConfig, get_discord_config
from guildsync.config.logging_config import get_logger
from guildsync.sync import templates as t
from guildsync.sync.cards import InteractionReply
from guildsync.sync.interaction.codec import DecodedToken, InteractionVerb, decode, pack
from guildsync.sync.interaction.identity import Capability, Identity, IdentityResolver
from guildsync.sync.interaction.setup_wizard import SetupWizard
from guildsync.sync.models import TaskRecord
from guildsync.sync.ports.chat_gateway_port import ChatGatewayPort
from guildsync.sync.ports.correlation_store_port import CorrelationStorePort
from guildsync.sync.ports.web_app_port import WebAppPort

log = get_logger("guildsync.interaction.handlers")

MAX_HOURS = 24
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class InteractionContext:
    """One inbound component click, select or modal submit"""
    custom_id: str
    user_id: str
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    display_name: Optional[str] = None
    values: Tuple[str, ...] = ()
    fields: Dict[str, str] = field(default_factory=dict)

    def field_value(self, name: str) -> str:
        return (self.fields.get(name) or "").strip()


# =============================================================================
# Input Parsing
# =============================================================================

def parse_hours(text: str) -> int:
    """
    Hours as typed by a user ("2.5" or "2,5") to whole minutes.

    Raises:
        ValidationError: not a number, or outside 0 < h <= 24
    """
    try:
        hours = float((text or "").strip().replace(",", "."))
    except ValueError:
        raise ValidationError(t.INVALID_HOURS) from None
    if not (0 < hours <= MAX_HOURS):
        raise ValidationError(t.INVALID_HOURS)
    minutes = round(hours * 60)
    if minutes <= 0:
        raise ValidationError(t.INVALID_HOURS)
    return minutes


def parse_optional_date(text: Optional[str], default: Optional[date] = None) -> Optional[date]:
    text = (text or "").strip()
    if not text:
        return default
    if not _DATE_PATTERN.match(text):
        raise ValidationError(t.INVALID_DATE)
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(t.INVALID_DATE) from None


# =============================================================================
# Router
# =============================================================================

VerbHandler = Callable[[InteractionContext, DecodedToken, Identity], Awaitable[InteractionReply]]

_REQUIRED: Dict[InteractionVerb, Capability] = {
    InteractionVerb.TASK_VIEW: Capability.VIEW,
    InteractionVerb.TASK_COMPLETE: Capability.WRITE,
    InteractionVerb.TASK_ASSIGN: Capability.WRITE,
    InteractionVerb.ASSIGN_USER: Capability.WRITE,
    InteractionVerb.TASK_PIN: Capability.WRITE,
    InteractionVerb.TIME_LOG: Capability.WRITE,
    InteractionVerb.TIME_LOG_MODAL: Capability.WRITE,
    InteractionVerb.TASK_CREATE: Capability.WRITE,
    InteractionVerb.TASK_CREATE_MODAL: Capability.WRITE,
    InteractionVerb.NOTE_CREATE: Capability.WRITE,
    InteractionVerb.NOTE_CREATE_MODAL: Capability.WRITE,
    InteractionVerb.START_ONBOARDING: Capability.ADMIN,
    InteractionVerb.SELECT_PROJECTS: Capability.ADMIN,
    InteractionVerb.CONFIRM_SYNC: Capability.ADMIN,
    InteractionVerb.CANCEL_SYNC: Capability.ADMIN,
}


def _error(message: str, details: Optional[str] = None, update: bool = False) -> InteractionReply:
    return InteractionReply(card=t.error_card(message, details), update=update)


def _success(message: str, update: bool = False) -> InteractionReply:
    return InteractionReply(card=t.success_card(message), update=update)


class InteractionRouter:
    """
    Decodes the custom_id, resolves who clicked, checks the verb's
    capability and runs the handler. Unknown custom_ids return ``None``.
    """

    def __init__(
        self,
        web_app: WebAppPort,
        store: CorrelationStorePort,
        gateway: ChatGatewayPort,
        identities: IdentityResolver,
        wizard: SetupWizard,
        discord_config: Optional[DiscordConfig] = None,
    ):
        self.web_app = web_app
        self.store = store
        self.gateway = gateway
        self.identities = identities
        self.wizard = wizard
        config = discord_config or get_discord_config()
        self.base_url = config.web_app_url
        self.max_token_length = config.custom_id_max_length

        self._handlers: Dict[InteractionVerb, VerbHandler] = {
            InteractionVerb.TASK_VIEW: self._task_view,
            InteractionVerb.TASK_COMPLETE: self._task_complete,
            InteractionVerb.TASK_ASSIGN: self._task_assign,
            InteractionVerb.ASSIGN_USER: self._assign_user,
            InteractionVerb.TASK_PIN: self._task_pin,
            InteractionVerb.TIME_LOG: self._time_log,
            InteractionVerb.TIME_LOG_MODAL: self._time_log_submit,
            InteractionVerb.TASK_CREATE: self._task_create,
            InteractionVerb.TASK_CREATE_MODAL: self._task_create_submit,
            InteractionVerb.NOTE_CREATE: self._note_create,
            InteractionVerb.NOTE_CREATE_MODAL: self._note_create_submit,
            InteractionVerb.START_ONBOARDING: self._start_onboarding,
            InteractionVerb.SELECT_PROJECTS: self._select_projects,
            InteractionVerb.CONFIRM_SYNC: self._confirm_sync,
            InteractionVerb.CANCEL_SYNC: self._cancel_sync,
        }

    async def handle(self, ctx: InteractionContext) -> Optional[InteractionReply]:
        token = decode(ctx.custom_id)
        if token.verb is InteractionVerb.NOOP:
            log.debug(f"Ignoring unknown custom_id {ctx.custom_id!r}")
            return None

        identity = await self.identities.resolve_identity(ctx.user_id, ctx.guild_id, ctx.display_name)
        required = _REQUIRED[token.verb]
        if not identity.can(required):
            log.info(f"{identity.user_id} lacks {required.value} for {token.verb.name}")
            if identity.is_guest:
                return InteractionReply(content=t.LINK_ACCOUNT_REQUIRED)
            return InteractionReply(content=t.NOT_ALLOWED)

        try:
            return await self._handlers[token.verb](ctx, token, identity)
        except ValidationError as e:
            return _error(str(e))
        except GuildSyncException as e:
            log.warning(f"{token.verb.name} by {identity.user_id} failed: {e}")
            return _error(t.COULD_NOT_COMPLETE, details=str(e))
        except Exception:
            log.exception(f"{token.verb.name} by {identity.user_id} failed unexpectedly")
            return _error(t.COULD_NOT_COMPLETE)

    async def setup_command(
        self,
        user_id: str,
        guild_id: Optional[str],
        display_name: Optional[str] = None,
    ) -> InteractionReply:
        """/setup: post the onboarding card for admins"""
        if guild_id is None:
            return InteractionReply(content=t.NOT_IN_GUILD)
        identity = await self.identities.resolve_identity(user_id, guild_id, display_name)
        if identity.is_guest:
            return InteractionReply(content=t.LINK_ACCOUNT_REQUIRED)
        if not identity.can(Capability.ADMIN):
            return InteractionReply(content=t.NOT_ALLOWED)
        return InteractionReply(card=t.onboarding_card())

    async def _load_task(self, task_id: str, identity: Identity) -> Optional[TaskRecord]:
        task = await self.web_app.get_task(task_id)
        if task is None:
            return None
        if identity.tenant_id and task.tenant_id and task.tenant_id != identity.tenant_id:
            log.warning(f"{identity.user_id} referenced task {task_id} of another tenant")
            return None
        return task

    # =========================================================================
    # Tasks
    # =========================================================================

    async def _task_view(self, ctx, token, identity) -> InteractionReply:
        task = await self._load_task(token.ids[0], identity)
        if task is None:
            return _error(t.TASK_NOT_FOUND)
        return InteractionReply(card=t.task_card(task, self.base_url, with_buttons=not identity.is_guest))

    async def _task_complete(self, ctx, token, identity) -> InteractionReply:
        task = await self._load_task(token.ids[0], identity)
        if task is None:
            return _error(t.TASK_NOT_FOUND)
        if (task.status or "").upper() == "DONE":
            return InteractionReply(content=t.task_already_done(task.title))

        await self.web_app.complete_task(task.id, identity.user_id)
        log.info(f"Task {task.id} completed by {identity.user_id} from Discord")
        return _success(t.task_marked_done(task.title))

    async def _task_assign(self, ctx, token, identity) -> InteractionReply:
        task = await self._load_task(token.ids[0], identity)
        if task is None:
            return _error(t.TASK_NOT_FOUND)
        members = await self.web_app.list_project_members(task.project_id)
        if not members:
            return _error(t.NO_MEMBERS_TO_ASSIGN)
        return InteractionReply(card=t.assign_select_card(task, members))

    async def _assign_user(self, ctx, token, identity) -> InteractionReply:
        task = await self._load_task(token.ids[0], identity)
        if task is None:
            return _error(t.TASK_NOT_FOUND, update=True)
        if not ctx.values:
            raise ValidationError(t.NO_MEMBERS_TO_ASSIGN)

        assignee_id = ctx.values[0]
        await self.web_app.assign_task(task.id, assignee_id, identity.user_id)
        members = await self.web_app.list_project_members(task.project_id)
        name = next((m.name for m in members if m.user_id == assignee_id), assignee_id)
        log.info(f"Task {task.id} assigned to {assignee_id} by {identity.user_id} from Discord")
        return _success(t.task_assigned_to(task.title, name), update=True)

    async def _task_pin(self, ctx, token, identity) -> InteractionReply:
        task = await self._load_task(token.ids[0], identity)
        if task is None:
            return _error(t.TASK_NOT_FOUND)
        posting = await self.store.get_task_posting(task.id)
        if posting is None:
            return _error(t.NO_POSTING_TO_PIN)
        pinned = await self.gateway.pin_message(posting.channel_id, posting.message_id)
        if not pinned.success:
            return _error(t.COULD_NOT_COMPLETE, details=pinned.error)
        return _success("Uppgiften fästes i kanalen.")

    # =========================================================================
    # Time
    # =========================================================================

    async def _time_log(self, ctx, token, identity) -> InteractionReply:
        return InteractionReply(modal=t.time_log_modal(token.ids[0]))

    async def _time_log_submit(self, ctx, token, identity) -> InteractionReply:
        minutes = parse_hours(ctx.field_value("hours"))
        entry_date = parse_optional_date(ctx.field_value("date"), default=date.today())

        task = await self._load_task(token.ids[0], identity)
        if task is None:
            return _error(t.TASK_NOT_FOUND)

        await self.web_app.create_time_entry(
            task.id, identity.user_id, minutes, entry_date, ctx.field_value("description") or None
        )
        return _success(t.time_logged_reply(minutes, task.title))

    # =========================================================================
    # Project Hub
    # =========================================================================

    async def _task_create(self, ctx, token, identity) -> InteractionReply:
        return InteractionReply(modal=t.task_create_modal(token.ids[0]))

    async def _task_create_submit(self, ctx, token, identity) -> InteractionReply:
        title = ctx.field_value("title")
        if not title:
            raise ValidationError(t.TITLE_REQUIRED)
        deadline = parse_optional_date(ctx.field_value("deadline"))

        project = await self.web_app.get_project(token.ids[0])
        if project is None or (identity.tenant_id and project.tenant_id != identity.tenant_id):
            return _error(t.PROJECT_NOT_FOUND)

        task = await self.web_app.create_task(
            project.id, identity.user_id, title, ctx.field_value("description") or None, deadline
        )
        log.info(f"Task {task.id} created in project {project.id} by {identity.user_id} from Discord")
        return _success(t.task_created_reply(task.title))

    async def _note_create(self, ctx, token, identity) -> InteractionReply:
        return InteractionReply(modal=t.note_create_modal(token.ids[0]))

    async def _note_create_submit(self, ctx, token, identity) -> InteractionReply:
        title = ctx.field_value("title")
        if not title:
            raise ValidationError(t.TITLE_REQUIRED)

        project = await self.web_app.get_project(token.ids[0])
        if project is None or (identity.tenant_id and project.tenant_id != identity.tenant_id):
            return _error(t.PROJECT_NOT_FOUND)

        await self.web_app.create_note(project.id, identity.user_id, title, ctx.field_value("content"))
        return _success(t.note_created_reply(title))

    # =========================================================================
    # Onboarding
    # =========================================================================

    async def _start_onboarding(self, ctx, token, identity) -> InteractionReply:
        if not ctx.guild_id:
            return _error(t.NOT_IN_GUILD)
        projects = await self.web_app.list_tenant_projects(identity.tenant_id, limit=t.MAX_SELECT_OPTIONS)
        if not projects:
            return _error(t.NO_ACTIVE_PROJECTS)
        return InteractionReply(card=t.project_select_card(projects))

    async def _select_projects(self, ctx, token, identity) -> InteractionReply:
        if not ctx.values:
            return _error(t.NO_PROJECTS_SELECTED, update=True)

        try:
            confirm_token, overflow = pack(InteractionVerb.CONFIRM_SYNC, ctx.values, self.max_token_length)
        except InteractionTokenError as e:
            log.warning(f"Could not pack project selection: {e}")
            return _error(t.COULD_NOT_COMPLETE, details=str(e), update=True)

        fitted = set(ctx.values) - set(overflow)
        projects = [
            p for p in await self.web_app.list_tenant_projects(identity.tenant_id, limit=t.MAX_SELECT_OPTIONS)
            if p.id in fitted
        ]
        return InteractionReply(
            card=t.confirm_sync_card(projects, confirm_token, overflow_count=len(overflow)),
            update=True,
        )

    async def _confirm_sync(self, ctx, token, identity) -> InteractionReply:
        if not ctx.guild_id:
            return _error(t.NOT_IN_GUILD, update=True)
        try:
            report = await self.wizard.run(identity.tenant_id, ctx.guild_id, token.ids)
        except ConflictError as e:
            log.warning(f"Setup refused for tenant {identity.tenant_id}: {e}")
            return _error(t.COULD_NOT_COMPLETE, details=str(e), update=True)
        return InteractionReply(card=t.setup_summary_card(report), update=True)

    async def _cancel_sync(self, ctx, token, identity) -> InteractionReply:
        return InteractionReply(content=t.SYNC_CANCELLED, update=True)
