# =============================================================================
# File: guildsync/sync/dead_letter.py
# Description: Capped Redis list of events whose reconciliation hit a
#              transient failure, with manual replay
# =============================================================================

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis

from guildsync.config.logging_config import get_logger
from guildsync.config.sync_config import SyncConfig, get_sync_config
from guildsync.infra.metrics.sync_metrics import record_dead_letter
from guildsync.infra.persistence import redis_client
from guildsync.sync.events import SyncEvent, channel_for

log = get_logger("guildsync.dead_letter")

Publisher = Callable[[str, Dict[str, Any]], Awaitable[int]]


class RedisDeadLetterSink:
    """
    Entries are JSON objects:
    ``{"id", "topic", "payload", "reason", "failed_at"}``, newest first.
    """

    def __init__(self, client: Optional[redis.Redis] = None, sync_config: Optional[SyncConfig] = None):
        self._client = client
        self.config = sync_config or get_sync_config()

    @property
    def key(self) -> str:
        return self.config.dead_letter_key

    async def push(self, event: SyncEvent, reason: str) -> str:
        entry_id = uuid.uuid4().hex
        entry = {
            "id": entry_id,
            "topic": event.topic,
            "payload": event.raw,
            "reason": reason,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        await redis_client.push_capped(
            self.key,
            json.dumps(entry, ensure_ascii=False, default=str),
            max_entries=self.config.dead_letter_max_entries,
            ttl_seconds=self.config.dead_letter_ttl_seconds,
            r=self._client,
        )
        record_dead_letter(event.topic)
        log.warning(f"Dead-lettered {event.topic} ({event.entity_key}): {reason}")
        return entry_id

    async def list(self, limit: int = 50) -> List[Dict[str, Any]]:
        raw_entries = await redis_client.lrange(self.key, 0, limit - 1, r=self._client)
        entries = []
        for raw in raw_entries:
            try:
                entries.append(json.loads(raw))
            except (TypeError, json.JSONDecodeError):
                log.warning(f"Unreadable dead-letter entry skipped: {raw!r:.120}")
        return entries

    async def replay(self, entry_id: str, publisher: Optional[Publisher] = None) -> bool:
        """
        Republish one entry to its topic channel and remove it.

        Returns False when the entry no longer exists or nobody received it.
        """
        raw_entries = await redis_client.lrange(self.key, 0, -1, r=self._client)
        for raw in raw_entries:
            try:
                entry = json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                continue
            if entry.get("id") != entry_id:
                continue

            channel = channel_for(entry["topic"], self.config.topic_prefix)
            envelope = {"topic": entry["topic"], "payload": entry["payload"]}
            if publisher is not None:
                receivers = await publisher(channel, envelope)
            else:
                receivers = await redis_client.publish(channel, envelope, r=self._client)

            if not receivers:
                log.warning(f"Replay of {entry_id} on {channel} reached no subscriber, keeping entry")
                return False

            await redis_client.lrem(self.key, raw, count=1, r=self._client)
            log.info(f"Replayed dead letter {entry_id} on {channel}")
            return True

        return False
