from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

import pytest

from guildsync.config.redis_config import RedisConfig
from guildsync.config.sync_config import SyncConfig
from guildsync.infra.event_bus.sync_event_listener import SyncEventListener
from guildsync.sync.events import TOPICS
from guildsync.sync.outcome import SyncOutcome


class RecordingDispatcher:
    """Stands in for EventDispatcher: records raw messages"""

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.received: List[Tuple[str, Any]] = []
        self.delay = delay
        self.error = error
        self.finished = 0

    @property
    def processed_count(self) -> int:
        return self.finished

    async def dispatch_raw(self, channel: str, raw: Any) -> SyncOutcome:
        self.received.append((channel, raw))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.finished += 1
        return SyncOutcome.ok()


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _listener(fake_redis, dispatcher, **sync_kwargs) -> SyncEventListener:
    return SyncEventListener(
        fake_redis,
        dispatcher,
        SyncConfig(**sync_kwargs),
        RedisConfig(pubsub_poll_timeout=0.01),
    )


async def test_subscribes_to_every_topic(fake_redis) -> None:
    listener = _listener(fake_redis, RecordingDispatcher())

    await listener.start()
    try:
        (pubsub,) = fake_redis.pubsubs
        assert pubsub.channels == [f"discord:{topic}" for topic in TOPICS]
        assert listener.is_running
    finally:
        await listener.stop()

    assert pubsub.closed
    assert not listener.is_running


async def test_delivered_messages_reach_dispatcher(fake_redis) -> None:
    dispatcher = RecordingDispatcher()
    listener = _listener(fake_redis, dispatcher)
    await listener.start()

    fake_redis.deliver("discord:task-created", '{"taskId": "t1"}')
    fake_redis.deliver("discord:task-deleted", '{"taskId": "t2"}')
    await _wait_for(lambda: dispatcher.finished == 2)
    await listener.stop()

    assert dispatcher.received == [
        ("discord:task-created", '{"taskId": "t1"}'),
        ("discord:task-deleted", '{"taskId": "t2"}'),
    ]
    assert listener.get_status()["received"] == 2


async def test_submit_decodes_channel_bytes(fake_redis) -> None:
    dispatcher = RecordingDispatcher()
    listener = _listener(fake_redis, dispatcher)

    await listener.submit(b"discord:verify-guild", b"{}")

    assert dispatcher.received == [("discord:verify-guild", b"{}")]
    assert listener.pending_count == 0


async def test_dispatch_error_does_not_escape(fake_redis) -> None:
    dispatcher = RecordingDispatcher(error=RuntimeError("boom"))
    listener = _listener(fake_redis, dispatcher)

    await listener.submit("discord:task-created", "{}")

    assert len(dispatcher.received) == 1


async def test_stop_waits_for_in_flight_work(fake_redis) -> None:
    dispatcher = RecordingDispatcher(delay=0.05)
    listener = _listener(fake_redis, dispatcher, shutdown_grace_seconds=1.0)
    await listener.start()

    listener.submit("discord:task-created", "{}")
    await listener.stop()

    assert dispatcher.finished == 1
    assert listener.pending_count == 0


async def test_stop_cancels_after_grace_period(fake_redis) -> None:
    dispatcher = RecordingDispatcher(delay=5.0)
    listener = _listener(fake_redis, dispatcher, shutdown_grace_seconds=0.05)
    await listener.start()

    task = listener.submit("discord:task-created", "{}")
    await asyncio.sleep(0)
    await listener.stop()

    assert task.cancelled()
    assert dispatcher.finished == 0


@pytest.mark.parametrize("message", [None, {"type": "subscribe", "channel": "discord:x", "data": 1}])
async def test_non_messages_are_ignored(fake_redis, message) -> None:
    dispatcher = RecordingDispatcher()
    listener = _listener(fake_redis, dispatcher)
    await listener.start()

    fake_redis.pubsubs[0].queue.put_nowait(message)
    fake_redis.deliver("discord:task-created", "{}")
    await _wait_for(lambda: dispatcher.finished == 1)
    await listener.stop()

    assert dispatcher.received == [("discord:task-created", "{}")]
