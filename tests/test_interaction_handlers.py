from __future__ import annotations

from datetime import date

import pytest

from guildsync.common.exceptions.exceptions import ValidationError
from guildsync.sync import templates as t
from guildsync.sync.interaction.codec import InteractionVerb, decode, encode
from guildsync.sync.interaction.handlers import (
    InteractionContext,
    InteractionRouter,
    parse_hours,
    parse_optional_date,
)
from guildsync.sync.interaction.identity import IdentityResolver
from guildsync.sync.interaction.setup_wizard import SetupWizard
from guildsync.sync.models import TaskPostingLink
from tests.conftest import GUILD_ID, TENANT_ID

WORKER = "555"
ADMIN = "556"
GUEST = "999000111"


@pytest.fixture
def router(web_app, store, gateway, channels, discord_config) -> InteractionRouter:
    web_app.add_user("u-worker", "Anna", TENANT_ID, role="WORKER", discord_user_id=WORKER)
    web_app.add_user("u-admin", "Chef", TENANT_ID, role="ADMIN", discord_user_id=ADMIN)
    web_app.add_project("p1", TENANT_ID, "Villa")
    web_app.add_task("task-1", "p1", "Dra el")
    return InteractionRouter(
        web_app, store, gateway,
        IdentityResolver(web_app, store),
        SetupWizard(store, web_app, channels),
        discord_config,
    )


def _ctx(custom_id: str, user_id: str = WORKER, **kwargs) -> InteractionContext:
    kwargs.setdefault("guild_id", GUILD_ID)
    return InteractionContext(custom_id=custom_id, user_id=user_id, **kwargs)


# =============================================================================
# Input Parsing
# =============================================================================

def test_parse_hours() -> None:
    assert parse_hours("2") == 120
    assert parse_hours("2,5") == 150
    assert parse_hours(" 0.25 ") == 15
    assert parse_hours("24") == 1440


@pytest.mark.parametrize("text", ["", "abc", "0", "-1", "24.5", "0.001"])
def test_parse_hours_rejects(text: str) -> None:
    with pytest.raises(ValidationError):
        parse_hours(text)


def test_parse_optional_date() -> None:
    assert parse_optional_date("2024-05-17") == date(2024, 5, 17)
    assert parse_optional_date("", default=date(2024, 1, 1)) == date(2024, 1, 1)
    with pytest.raises(ValidationError):
        parse_optional_date("17/5")
    with pytest.raises(ValidationError):
        parse_optional_date("2024-13-40")


# =============================================================================
# Routing & Access
# =============================================================================

async def test_unknown_custom_id_is_ignored(router) -> None:
    assert await router.handle(_ctx("some_other_bot_button")) is None


async def test_guest_cannot_write(router, web_app) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_COMPLETE, ["task-1"]), GUEST))

    assert reply.content == t.LINK_ACCOUNT_REQUIRED
    assert web_app.tasks["task-1"].status == "TODO"


async def test_guest_can_view_without_buttons(router) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_VIEW, ["task-1"]), GUEST))

    assert reply.card.title == "📋 Dra el"
    assert reply.card.button_rows == ()


async def test_worker_cannot_start_onboarding(router) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.START_ONBOARDING)))
    assert reply.content == t.NOT_ALLOWED


# =============================================================================
# Tasks
# =============================================================================

async def test_complete_task(router, web_app) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_COMPLETE, ["task-1"])))

    assert reply.card.description == t.task_marked_done("Dra el")
    assert web_app.tasks["task-1"].status == "DONE"
    assert web_app.get_last_call("complete_task").args == ("task-1", "u-worker")

    again = await router.handle(_ctx(encode(InteractionVerb.TASK_COMPLETE, ["task-1"])))
    assert again.content == t.task_already_done("Dra el")


async def test_task_of_other_tenant_is_not_found(router, web_app) -> None:
    web_app.add_project("p-x", "other-tenant", "Främmande")
    web_app.add_task("task-x", "p-x", "Hemlig")

    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_VIEW, ["task-x"])))

    assert reply.card.description == t.TASK_NOT_FOUND


async def test_assign_flow(router, web_app) -> None:
    web_app.add_project_member("p1", "u-worker", "Anna")
    web_app.add_project_member("p1", "u-2", "Bertil")

    select = await router.handle(_ctx(encode(InteractionVerb.TASK_ASSIGN, ["task-1"])))
    assert [o.value for o in select.card.select.options] == ["u-worker", "u-2"]
    assert decode(select.card.select.custom_id).ids == ("task-1",)

    reply = await router.handle(_ctx(select.card.select.custom_id, values=("u-2",)))
    assert reply.update
    assert reply.card.description == t.task_assigned_to("Dra el", "Bertil")
    assert web_app.tasks["task-1"].assignees == ("Bertil",)


async def test_assign_without_members(router) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_ASSIGN, ["task-1"])))
    assert reply.card.description == t.NO_MEMBERS_TO_ASSIGN


async def test_assign_to_non_member_reports_error(router) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.ASSIGN_USER, ["task-1"]), values=("stranger",)))

    assert reply.card.description == t.COULD_NOT_COMPLETE
    assert reply.card.fields[0].name == "Detaljer"


async def test_pin_task_posting(router, gateway, store) -> None:
    channel_id = gateway.add_channel(GUILD_ID, "villa-uppgifter")
    posted = await gateway.post_message(channel_id, t.error_card("x"))
    await store.upsert_task_posting(TaskPostingLink("task-1", posted.external_id, channel_id))

    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_PIN, ["task-1"])))

    assert reply.card.title == "✅ Klart"
    assert posted.external_id in gateway.pins


async def test_pin_without_posting(router) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_PIN, ["task-1"])))
    assert reply.card.description == t.NO_POSTING_TO_PIN


async def test_pin_task_of_other_tenant_is_not_found(router, web_app, gateway, store) -> None:
    web_app.add_project("p-x", "other-tenant", "Främmande")
    web_app.add_task("task-x", "p-x", "Hemlig")
    channel_id = gateway.add_channel(GUILD_ID, "frammande-uppgifter")
    posted = await gateway.post_message(channel_id, t.error_card("x"))
    await store.upsert_task_posting(TaskPostingLink("task-x", posted.external_id, channel_id))

    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_PIN, ["task-x"])))

    assert reply.card.description == t.TASK_NOT_FOUND
    assert posted.external_id not in gateway.pins


async def test_linked_account_without_membership_cannot_write(router, web_app) -> None:
    web_app.add_user("u-out", "Utomstående", None, role=None, discord_user_id="777")

    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_COMPLETE, ["task-1"]), user_id="777"))

    assert reply.content == t.LINK_ACCOUNT_REQUIRED
    assert not web_app.was_called("complete_task")
    assert web_app.tasks["task-1"].status == "TODO"


# =============================================================================
# Time & Hub Modals
# =============================================================================

async def test_time_log_opens_modal(router) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TIME_LOG, ["task-1"])))
    assert reply.modal.custom_id == encode(InteractionVerb.TIME_LOG_MODAL, ["task-1"])


async def test_time_log_submit(router, web_app) -> None:
    reply = await router.handle(_ctx(
        encode(InteractionVerb.TIME_LOG_MODAL, ["task-1"]),
        fields={"hours": "2,5", "date": "2024-05-17", "description": "Kabeldragning"},
    ))

    assert reply.card.description == t.time_logged_reply(150, "Dra el")
    entry = web_app.time_entries[0]
    assert (entry.task_id, entry.user_id, entry.minutes) == ("task-1", "u-worker", 150)
    assert entry.entry_date == date(2024, 5, 17)
    assert entry.description == "Kabeldragning"


async def test_time_log_submit_defaults_to_today(router, web_app) -> None:
    await router.handle(_ctx(encode(InteractionVerb.TIME_LOG_MODAL, ["task-1"]), fields={"hours": "1"}))
    assert web_app.time_entries[0].entry_date == date.today()
    assert web_app.time_entries[0].description is None


async def test_time_log_submit_rejects_bad_hours(router, web_app) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TIME_LOG_MODAL, ["task-1"]), fields={"hours": "25"}))

    assert reply.card.description == t.INVALID_HOURS
    assert web_app.time_entries == []


async def test_task_create_submit(router, web_app) -> None:
    opened = await router.handle(_ctx(encode(InteractionVerb.TASK_CREATE, ["p1"])))
    assert decode(opened.modal.custom_id).verb is InteractionVerb.TASK_CREATE_MODAL

    reply = await router.handle(_ctx(
        opened.modal.custom_id,
        fields={"title": "Montera spotlights", "description": "", "deadline": "2024-06-01"},
    ))

    assert reply.card.description == t.task_created_reply("Montera spotlights")
    created = web_app.get_last_call("create_task").args
    assert created == ("p1", "u-worker", "Montera spotlights", None, date(2024, 6, 1))


async def test_task_create_requires_title(router, web_app) -> None:
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_CREATE_MODAL, ["p1"]), fields={"title": "  "}))
    assert reply.card.description == t.TITLE_REQUIRED
    assert not web_app.was_called("create_task")


async def test_task_create_in_other_tenant_project(router, web_app) -> None:
    web_app.add_project("p-x", "other-tenant", "Främmande")
    reply = await router.handle(_ctx(encode(InteractionVerb.TASK_CREATE_MODAL, ["p-x"]), fields={"title": "x"}))
    assert reply.card.description == t.PROJECT_NOT_FOUND


async def test_note_create_submit(router, web_app) -> None:
    reply = await router.handle(_ctx(
        encode(InteractionVerb.NOTE_CREATE_MODAL, ["p1"]),
        fields={"title": "Mått", "content": "Köket 3x4 m"},
    ))

    assert reply.card.description == t.note_created_reply("Mått")
    note = web_app.notes[0]
    assert (note.project_id, note.user_id, note.content) == ("p1", "u-worker", "Köket 3x4 m")


# =============================================================================
# Onboarding
# =============================================================================

async def test_setup_command_access(router) -> None:
    assert (await router.setup_command(ADMIN, None)).content == t.NOT_IN_GUILD
    assert (await router.setup_command(GUEST, GUILD_ID)).content == t.LINK_ACCOUNT_REQUIRED
    assert (await router.setup_command(WORKER, GUILD_ID)).content == t.NOT_ALLOWED

    reply = await router.setup_command(ADMIN, GUILD_ID)
    assert reply.card.button_rows[0][0].custom_id == "start_onboarding"


async def test_onboarding_flow(router, web_app, gateway) -> None:
    web_app.add_project("p2", TENANT_ID, "Garage")
    web_app.add_project("p3", TENANT_ID, "Altan", status="COMPLETED")

    start = await router.handle(_ctx("start_onboarding", ADMIN))
    assert [o.value for o in start.card.select.options] == ["p2", "p1"]

    confirm = await router.handle(_ctx(start.card.select.custom_id, ADMIN, values=("p1", "p2")))
    assert confirm.update
    confirm_button, cancel_button = confirm.card.button_rows[0]
    assert decode(confirm_button.custom_id).ids == ("p1", "p2")
    assert cancel_button.custom_id == "cancel_sync"

    summary = await router.handle(_ctx(confirm_button.custom_id, ADMIN))
    assert summary.update
    assert summary.card.title == "✅ Synkning klar!"
    assert len(gateway.text_channels(GUILD_ID)) == 8


async def test_select_projects_overflow(router, web_app, discord_config) -> None:
    ids = [f"project-{i}-{'x' * 20}" for i in range(5)]
    for i, project_id in enumerate(ids):
        web_app.add_project(project_id, TENANT_ID, f"Projekt {i}")

    reply = await router.handle(_ctx("select_projects_for_sync", ADMIN, values=tuple(ids)))

    token = reply.card.button_rows[0][0].custom_id
    fitted = decode(token).ids
    assert len(token) <= discord_config.custom_id_max_length
    assert fitted == tuple(ids[:len(fitted)])
    assert 0 < len(fitted) < len(ids)
    assert f"{len(ids) - len(fitted)} projekt" in reply.card.description


async def test_select_without_values(router) -> None:
    reply = await router.handle(_ctx("select_projects_for_sync", ADMIN))
    assert reply.update
    assert reply.card.description == t.NO_PROJECTS_SELECTED


async def test_confirm_sync_in_second_guild_is_refused(router, gateway) -> None:
    gateway.add_guild("901", "Andra servern")

    reply = await router.handle(_ctx("confirm_sync_p1", ADMIN, guild_id="901"))

    assert reply.update
    assert reply.card.description == t.COULD_NOT_COMPLETE
    assert gateway.text_channels("901") == []


async def test_cancel_sync(router) -> None:
    reply = await router.handle(_ctx("cancel_sync", ADMIN))
    assert reply.update
    assert reply.content == t.SYNC_CANCELLED


async def test_start_onboarding_without_projects(router, web_app) -> None:
    web_app.projects.clear()
    reply = await router.handle(_ctx("start_onboarding", ADMIN))
    assert reply.card.description == t.NO_ACTIVE_PROJECTS
