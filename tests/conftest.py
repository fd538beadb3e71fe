# =============================================================================
# File: tests/conftest.py
# Description: Shared fixtures: fakes for every port plus wired reconcilers
# =============================================================================

from __future__ import annotations

import pytest

from guildsync.config.discord_config import DiscordConfig, reset_discord_config
from guildsync.config.redis_config import reset_redis_config
from guildsync.config.reliability_config import reset_reliability_settings
from guildsync.config.sync_config import SyncConfig, reset_sync_config
from guildsync.infra.reliability.circuit_breaker import reset_circuit_breakers
from guildsync.sync.reconcilers.channel_lifecycle import ChannelLifecycleReconciler
from guildsync.sync.reconcilers.notification import NotificationFanout
from guildsync.sync.reconcilers.role_sync import RoleSyncReconciler
from guildsync.sync.reconcilers.task_posting import TaskPostingReconciler
from tests.fakes.fake_chat_gateway import FakeChatGateway
from tests.fakes.fake_correlation_store import FakeCorrelationStore
from tests.fakes.fake_redis import FakeRedis
from tests.fakes.fake_web_app import FakeWebApp

TENANT_ID = "tenant-1"
GUILD_ID = "900"
WEB_APP_URL = "https://app.arbetsytan.se"


@pytest.fixture(autouse=True)
def reset_singletons():
    reset_circuit_breakers()
    reset_sync_config()
    reset_discord_config()
    reset_redis_config()
    reset_reliability_settings()
    yield
    reset_circuit_breakers()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig()


@pytest.fixture
def discord_config() -> DiscordConfig:
    return DiscordConfig(web_app_url=WEB_APP_URL)


@pytest.fixture
def gateway() -> FakeChatGateway:
    fake = FakeChatGateway()
    fake.add_guild(GUILD_ID, "Bygg AB")
    return fake


@pytest.fixture
def store() -> FakeCorrelationStore:
    fake = FakeCorrelationStore()
    fake.link_tenant(TENANT_ID, GUILD_ID)
    return fake


@pytest.fixture
def web_app() -> FakeWebApp:
    fake = FakeWebApp()
    fake.add_tenant(TENANT_ID)
    return fake


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def channels(gateway, store, web_app, discord_config, sync_config) -> ChannelLifecycleReconciler:
    return ChannelLifecycleReconciler(gateway, store, web_app, discord_config, sync_config)


@pytest.fixture
def fanout(gateway, store, web_app) -> NotificationFanout:
    return NotificationFanout(gateway, store, web_app)


@pytest.fixture
def tasks(gateway, store, fanout, discord_config) -> TaskPostingReconciler:
    return TaskPostingReconciler(gateway, store, fanout, discord_config)


@pytest.fixture
def roles(gateway, store, web_app, channels, sync_config) -> RoleSyncReconciler:
    return RoleSyncReconciler(gateway, store, web_app, channels, sync_config)
