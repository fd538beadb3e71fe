# =============================================================================
# File: guildsync/infra/event_bus/sync_event_listener.py
# Description: Redis pub/sub subscriber that feeds web-app events into the
#              EventDispatcher
# =============================================================================
# Architecture:
#   - One pub/sub connection, one channel per topic ("discord:<topic>")
#   - Each message becomes an asyncio task tracked in _pending_tasks
#   - Ordering per entity is handled by the dispatcher's keyed lock
#   - stop(): unsubscribe -> grace period -> cancel leftovers
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Set

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from guildsync.config.logging_config import get_logger
from guildsync.config.redis_config import RedisConfig, get_redis_config
from guildsync.config.sync_config import SyncConfig, get_sync_config
from guildsync.sync.dispatcher import EventDispatcher
from guildsync.sync.events import TOPICS, channel_for

log = get_logger("guildsync.event_bus.listener")

RECONNECT_DELAY_SECONDS = 2.0
MAX_RECONNECT_DELAY_SECONDS = 30.0


class SyncEventListener:
    """
    Subscribes to every sync topic and hands raw messages to the dispatcher.

    The listener never interprets payloads; parsing, validation and routing
    all happen in EventDispatcher.dispatch_raw.
    """

    def __init__(
        self,
        client: redis.Redis,
        dispatcher: EventDispatcher,
        sync_config: Optional[SyncConfig] = None,
        redis_config: Optional[RedisConfig] = None,
    ):
        self._client = client
        self._dispatcher = dispatcher
        self.sync_config = sync_config or get_sync_config()
        self.redis_config = redis_config or get_redis_config()

        self._pubsub: Optional[Any] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._pending_tasks: Set[asyncio.Task] = set()
        self._running = False
        self._received = 0

    @property
    def channels(self) -> List[str]:
        return [channel_for(topic, self.sync_config.topic_prefix) for topic in TOPICS]

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        return len(self._pending_tasks)

    async def start(self) -> None:
        if self._running:
            log.warning("SyncEventListener already running")
            return

        log.info("Starting SyncEventListener...")
        await self._subscribe()
        self._running = True
        self._listen_task = asyncio.create_task(self._listen_loop(), name="sync-event-listener")
        log.info(f"SyncEventListener ready - {len(self.channels)} channels subscribed")

    async def _subscribe(self) -> None:
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(*self.channels)

    async def _resubscribe(self) -> None:
        if self._pubsub is not None:
            try:
                await self._pubsub.aclose()
            except (RedisConnectionError, OSError) as e:
                log.debug(f"Closing broken pub/sub connection: {e}")
        await self._subscribe()

    async def _listen_loop(self) -> None:
        delay = RECONNECT_DELAY_SECONDS
        while self._running:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self.redis_config.pubsub_poll_timeout,
                )
                delay = RECONNECT_DELAY_SECONDS
            except asyncio.CancelledError:
                raise
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                if not self._running:
                    break
                log.warning(f"Pub/sub connection lost: {e}. Reconnecting in {delay:.0f}s")
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_RECONNECT_DELAY_SECONDS)
                try:
                    await self._resubscribe()
                    log.info("Pub/sub resubscribed")
                except (RedisConnectionError, RedisTimeoutError, OSError) as re:
                    log.warning(f"Resubscribe failed: {re}")
                continue

            if message is None or message.get("type") != "message":
                continue
            self.submit(message["channel"], message["data"])

    def submit(self, channel: Any, data: Any) -> asyncio.Task:
        """Schedule one raw message for dispatch and track it until done."""
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        self._received += 1
        task = asyncio.create_task(self._handle(channel, data))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return task

    async def _handle(self, channel: str, data: Any) -> None:
        try:
            await self._dispatcher.dispatch_raw(channel, data)
        except asyncio.CancelledError:
            log.warning(f"Dispatch cancelled for message on {channel}")
            raise
        except Exception as e:
            # dispatch_raw already turns handler failures into outcomes
            log.error(f"Unhandled error dispatching message on {channel}: {e}", exc_info=True)

    async def stop(self) -> None:
        if not self._running:
            return
        log.info("Stopping SyncEventListener...")
        self._running = False

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe()
                await self._pubsub.aclose()
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                log.warning(f"Error closing pub/sub: {e}")

        if self._listen_task is not None:
            self._listen_task.cancel()
            await asyncio.gather(self._listen_task, return_exceptions=True)
            self._listen_task = None

        if self._pending_tasks:
            pending = list(self._pending_tasks)
            log.info(f"Waiting for {len(pending)} in-flight reconciliations...")
            done, still_pending = await asyncio.wait(pending, timeout=self.sync_config.shutdown_grace_seconds)
            if still_pending:
                log.warning(f"Grace period over, cancelling {len(still_pending)} reconciliations")
                for task in still_pending:
                    task.cancel()
                await asyncio.gather(*still_pending, return_exceptions=True)

        self._pending_tasks.clear()
        log.info(
            f"SyncEventListener stopped. received={self._received}, "
            f"processed={self._dispatcher.processed_count}"
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "channels": len(self.channels),
            "received": self._received,
            "pending": len(self._pending_tasks),
        }
