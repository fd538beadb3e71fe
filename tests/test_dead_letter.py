from __future__ import annotations

import json

from guildsync.config.sync_config import SyncConfig
from guildsync.sync.dead_letter import RedisDeadLetterSink
from guildsync.sync.events import parse_envelope
from tests.fakes.fake_redis import FakeRedis


def _event(task_id: str = "k1"):
    return parse_envelope("discord:task-deleted", {"tenantId": "t1", "taskId": task_id, "projectId": "p1"})


async def test_push_and_list_newest_first(fake_redis) -> None:
    sink = RedisDeadLetterSink(fake_redis, SyncConfig())

    first = await sink.push(_event("k1"), "timed out after 30s")
    second = await sink.push(_event("k2"), "post task: 503")

    entries = await sink.list()
    assert [e["id"] for e in entries] == [second, first]
    assert entries[0]["topic"] == "task-deleted"
    assert entries[0]["payload"]["taskId"] == "k2"
    assert entries[0]["reason"] == "post task: 503"
    assert "failed_at" in entries[0]


async def test_list_is_capped_and_expires(fake_redis) -> None:
    config = SyncConfig(dead_letter_max_entries=3, dead_letter_ttl_seconds=60)
    sink = RedisDeadLetterSink(fake_redis, config)

    for i in range(5):
        await sink.push(_event(f"k{i}"), "timeout")

    entries = await sink.list()
    assert [e["payload"]["taskId"] for e in entries] == ["k4", "k3", "k2"]
    assert fake_redis.expirations[config.dead_letter_key] == 60


async def test_list_skips_unreadable_entries(fake_redis) -> None:
    config = SyncConfig()
    sink = RedisDeadLetterSink(fake_redis, config)
    await sink.push(_event(), "timeout")
    fake_redis.lists[config.dead_letter_key].append("{broken")

    assert len(await sink.list()) == 1


async def test_replay_republishes_and_removes(fake_redis) -> None:
    config = SyncConfig()
    sink = RedisDeadLetterSink(fake_redis, config)
    entry_id = await sink.push(_event("k1"), "timeout")
    await sink.push(_event("k2"), "timeout")

    assert await sink.replay(entry_id)

    channel, message = fake_redis.published[-1]
    assert channel == "discord:task-deleted"
    replayed = parse_envelope(channel, message)
    assert replayed.payload.task_id == "k1"
    assert [e["payload"]["taskId"] for e in await sink.list()] == ["k2"]


async def test_replay_keeps_entry_without_subscribers() -> None:
    redis = FakeRedis(subscribers=0)
    sink = RedisDeadLetterSink(redis, SyncConfig())
    entry_id = await sink.push(_event(), "timeout")

    assert not await sink.replay(entry_id)
    assert len(await sink.list()) == 1


async def test_replay_unknown_entry(fake_redis) -> None:
    sink = RedisDeadLetterSink(fake_redis, SyncConfig())
    assert not await sink.replay("missing")


async def test_replay_with_custom_publisher(fake_redis) -> None:
    sink = RedisDeadLetterSink(fake_redis, SyncConfig())
    entry_id = await sink.push(_event(), "timeout")
    sent = []

    async def publisher(channel, envelope):
        sent.append((channel, envelope))
        return 1

    assert await sink.replay(entry_id, publisher)
    assert sent[0][0] == "discord:task-deleted"
    assert sent[0][1]["topic"] == "task-deleted"
    assert json.loads(json.dumps(sent[0][1]))["payload"]["taskId"] == "k1"
    assert fake_redis.published == []
