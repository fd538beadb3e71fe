from __future__ import annotations

import asyncio

import pytest

from guildsync.common.exceptions.exceptions import ConflictError
from guildsync.infra.reliability.keyed_lock import KeyedLock
from guildsync.sync.dispatcher import EventDispatcher
from guildsync.sync.interaction.setup_wizard import SetupWizard
from guildsync.sync.models import GatewayErrorKind
from tests.conftest import GUILD_ID, TENANT_ID


@pytest.fixture
def wizard(store, web_app, channels) -> SetupWizard:
    return SetupWizard(store, web_app, channels)


async def test_links_new_tenant(wizard, store, gateway, web_app) -> None:
    web_app.add_tenant("tenant-2", "Måleri AB")
    gateway.add_guild("901", "Måleriservern")

    link = await wizard.ensure_tenant_link("tenant-2", "901")

    assert link.guild_id == "901"
    assert store.tenant_links["tenant-2"].guild_id == "901"


async def test_existing_link_is_reused(wizard, store) -> None:
    link = await wizard.ensure_tenant_link(TENANT_ID, GUILD_ID)

    assert link.guild_id == GUILD_ID
    assert not store.was_called("upsert_tenant_link")


async def test_tenant_linked_elsewhere_is_refused(wizard) -> None:
    with pytest.raises(ConflictError):
        await wizard.ensure_tenant_link(TENANT_ID, "901")


async def test_guild_linked_to_other_tenant_is_refused(wizard, store) -> None:
    with pytest.raises(ConflictError):
        await wizard.ensure_tenant_link("tenant-2", GUILD_ID)
    assert "tenant-2" not in store.tenant_links


async def test_run_creates_channels_per_project(wizard, web_app, gateway) -> None:
    for i, name in enumerate(["Villa", "Garage", "Altan"]):
        web_app.add_project(f"p{i}", TENANT_ID, name)

    report = await wizard.run(TENANT_ID, GUILD_ID, ["p0", "p1", "p2", "p1"])

    assert (report.success_count, report.failure_count) == (3, 0)
    assert [name for _, name in report.succeeded] == ["Villa", "Garage", "Altan"]
    assert len(gateway.text_channels(GUILD_ID)) == 12


async def test_unknown_and_foreign_projects_fail(wizard, web_app) -> None:
    web_app.add_project("p1", TENANT_ID, "Villa")
    web_app.add_project("p-x", "other-tenant", "Främmande")

    report = await wizard.run(TENANT_ID, GUILD_ID, ["p1", "p-x", "missing"])

    assert report.success_count == 1
    assert report.failed == [
        ("p-x", "p-x", "Projektet hittades inte"),
        ("missing", "missing", "Projektet hittades inte"),
    ]


async def test_incomplete_channel_set_is_reported(wizard, web_app, gateway) -> None:
    web_app.add_project("p1", TENANT_ID, "Villa")
    gateway.configure_failure("ensure_channel", GatewayErrorKind.PERMISSION, "Missing Permissions",
                              when=lambda guild_id, name: name == "villa-filer")

    report = await wizard.run(TENANT_ID, GUILD_ID, ["p1"])

    assert report.success_count == 0
    assert report.failed[0][:2] == ("p1", "Villa")
    assert "Missing Permissions" in report.failed[0][2]


async def test_linked_members_get_access(wizard, web_app, gateway) -> None:
    web_app.add_project("p1", TENANT_ID, "Villa")
    web_app.add_project_member("p1", "u-1", "Anna", discord_user_id="555")
    web_app.add_project_member("p1", "u-2", "Bertil")
    gateway.add_member(GUILD_ID, "555")

    await wizard.run(TENANT_ID, GUILD_ID, ["p1"])

    grants = gateway.get_calls("set_permission")
    assert len(grants) == 4
    assert {call.args[1] for call in grants} == {"555"}
    assert all(c.overwrites.get("555") is False for c in gateway.text_channels(GUILD_ID))


async def test_run_waits_for_in_flight_project_reconciliation(store, web_app, channels, gateway, sync_config) -> None:
    locks = KeyedLock()
    dispatcher = EventDispatcher({}, sync_config=sync_config, locks=locks)
    wizard = SetupWizard(store, web_app, channels, locks=dispatcher.locks)
    web_app.add_project("p1", TENANT_ID, "Villa")

    async with dispatcher.locks.hold("project:p1"):
        running = asyncio.create_task(wizard.run(TENANT_ID, GUILD_ID, ["p1"]))
        await asyncio.sleep(0.01)
        assert not running.done()
        assert not gateway.was_called("ensure_channel")

    report = await running
    assert report.success_count == 1
    assert len(gateway.text_channels(GUILD_ID)) == 4
    assert len(locks) == 0
