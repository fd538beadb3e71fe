from __future__ import annotations

import asyncio
import json

from guildsync.config.sync_config import SyncConfig
from guildsync.sync.dead_letter import RedisDeadLetterSink
from guildsync.sync.dispatcher import EventDispatcher
from guildsync.sync.outcome import SyncOutcome

TASK_CREATED = {"tenantId": "t1", "taskId": "k1", "projectId": "p1", "title": "El"}


def _config(**kwargs) -> SyncConfig:
    kwargs.setdefault("reconcile_timeout_seconds", 1.0)
    return SyncConfig(**kwargs)


async def test_routes_to_topic_handler() -> None:
    seen = []

    async def handle(payload):
        seen.append(payload.task_id)
        return SyncOutcome.ok()

    dispatcher = EventDispatcher({"task-created": handle}, sync_config=_config())
    outcome = await dispatcher.dispatch_raw("discord:task-created", json.dumps(TASK_CREATED))

    assert outcome.is_ok
    assert seen == ["k1"]
    assert dispatcher.processed_count == 1


async def test_malformed_message_is_skipped() -> None:
    called = []

    async def handle(payload):
        called.append(payload)
        return SyncOutcome.ok()

    dispatcher = EventDispatcher({"task-created": handle}, sync_config=_config())

    for raw in ("{not json", json.dumps({"tenantId": "t1"})):
        outcome = await dispatcher.dispatch_raw("discord:task-created", raw)
        assert outcome.is_skipped
        assert outcome.reason.startswith("malformed:")
    assert called == []


async def test_topic_without_handler_is_skipped() -> None:
    dispatcher = EventDispatcher({}, sync_config=_config())
    outcome = await dispatcher.dispatch_raw("discord:task-created", TASK_CREATED)
    assert outcome.is_skipped


async def test_handler_returning_none_counts_as_ok() -> None:
    async def handle(payload):
        return None

    dispatcher = EventDispatcher({"task-created": handle}, sync_config=_config())
    assert (await dispatcher.dispatch_raw("discord:task-created", TASK_CREATED)).is_ok


async def test_timeout_is_dead_lettered(fake_redis) -> None:
    config = _config(reconcile_timeout_seconds=0.05)
    sink = RedisDeadLetterSink(fake_redis, config)

    async def slow(payload):
        await asyncio.sleep(5)
        return SyncOutcome.ok()

    dispatcher = EventDispatcher({"task-created": slow}, sink, config)
    outcome = await dispatcher.dispatch_raw("discord:task-created", TASK_CREATED)

    assert outcome.is_warning
    assert outcome.retryable
    assert "timed out" in outcome.reason
    entries = await sink.list()
    assert [e["topic"] for e in entries] == ["task-created"]
    assert entries[0]["payload"] == TASK_CREATED


async def test_handler_exception_becomes_retryable_warning(fake_redis) -> None:
    config = _config()
    sink = RedisDeadLetterSink(fake_redis, config)

    async def broken(payload):
        raise RuntimeError("connection reset")

    dispatcher = EventDispatcher({"task-created": broken}, sink, config)
    outcome = await dispatcher.dispatch_raw("discord:task-created", TASK_CREATED)

    assert outcome.is_warning
    assert "RuntimeError" in outcome.reason
    assert len(await sink.list()) == 1


async def test_permanent_warning_is_not_dead_lettered(fake_redis) -> None:
    config = _config()
    sink = RedisDeadLetterSink(fake_redis, config)

    async def forbidden(payload):
        return SyncOutcome.warning("post task: 403 Missing Access")

    dispatcher = EventDispatcher({"task-created": forbidden}, sink, config)
    outcome = await dispatcher.dispatch_raw("discord:task-created", TASK_CREATED)

    assert outcome.is_warning
    assert await sink.list() == []


async def test_same_entity_is_serialized() -> None:
    running = 0
    peak = 0
    order = []

    async def handle(payload):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        order.append(payload.title)
        await asyncio.sleep(0.01)
        running -= 1
        return SyncOutcome.ok()

    dispatcher = EventDispatcher({"task-created": handle}, sync_config=_config())
    first = dict(TASK_CREATED, title="first")
    second = dict(TASK_CREATED, title="second")

    await asyncio.gather(
        dispatcher.dispatch_raw("discord:task-created", first),
        dispatcher.dispatch_raw("discord:task-created", second),
    )

    assert peak == 1
    assert order == ["first", "second"]
    assert len(dispatcher.locks) == 0


async def test_different_entities_run_concurrently() -> None:
    running = 0
    peak = 0

    async def handle(payload):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.02)
        running -= 1
        return SyncOutcome.ok()

    dispatcher = EventDispatcher({"task-created": handle}, sync_config=_config())
    await asyncio.gather(
        dispatcher.dispatch_raw("discord:task-created", dict(TASK_CREATED, taskId="a")),
        dispatcher.dispatch_raw("discord:task-created", dict(TASK_CREATED, taskId="b")),
    )

    assert peak == 2
