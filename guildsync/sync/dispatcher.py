# =============================================================================
# File: guildsync/sync/dispatcher.py
# Description: Validates inbound messages, serializes per entity and runs the
#              topic handler under a timeout
# =============================================================================
"""
Error taxonomy at this boundary:

- malformed message (bad JSON, unknown topic, invalid payload): SKIPPED
- handler timeout or transient failure: WARNING, parked in the dead-letter
  sink when retryable
- unexpected handler exception: WARNING, logged with traceback; the
  subscriber loop keeps running
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

from guildsync.config.logging_config import get_logger
from guildsync.config.sync_config import SyncConfig, get_sync_config
from guildsync.infra.metrics import sync_metrics
from guildsync.infra.reliability.keyed_lock import KeyedLock
from guildsync.sync.events import MalformedEventError, SyncEvent, parse_envelope
from guildsync.sync.outcome import SyncOutcome

if TYPE_CHECKING:
    from guildsync.sync.dead_letter import RedisDeadLetterSink

log = get_logger("guildsync.dispatcher")

Handler = Callable[[Any], Awaitable[SyncOutcome]]


class EventDispatcher:

    def __init__(
        self,
        handlers: Dict[str, Handler],
        dead_letters: Optional['RedisDeadLetterSink'] = None,
        sync_config: Optional[SyncConfig] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.handlers = handlers
        self.dead_letters = dead_letters
        self.config = sync_config or get_sync_config()
        self.locks = locks if locks is not None else KeyedLock()
        self._processed = 0

    @property
    def processed_count(self) -> int:
        return self._processed

    async def dispatch_raw(self, channel: str, raw: Any) -> SyncOutcome:
        """Entry point for the pub/sub listener"""
        try:
            event = parse_envelope(channel, raw, self.config.topic_prefix)
        except MalformedEventError as e:
            log.warning(f"Dropping malformed message on {channel}: {e}")
            sync_metrics.record_event("unknown", "malformed", 0.0)
            return SyncOutcome.skipped(f"malformed: {e}")
        return await self.dispatch(event)

    async def dispatch(self, event: SyncEvent) -> SyncOutcome:
        handler = self.handlers.get(event.topic)
        if handler is None:
            log.warning(f"No handler registered for topic {event.topic}")
            return SyncOutcome.skipped(f"malformed: no handler for {event.topic}")

        key = event.entity_key
        started = time.monotonic()
        sync_metrics.guildsync_inflight_reconciliations.inc()
        try:
            async with self.locks.hold(key):
                outcome = await self._run(handler, event)
        finally:
            sync_metrics.guildsync_inflight_reconciliations.dec()
            self._processed += 1

        elapsed = time.monotonic() - started
        sync_metrics.record_event(event.topic, outcome.status.value, elapsed)
        self._log_outcome(event, outcome, elapsed)

        if outcome.is_warning and outcome.retryable:
            await self._dead_letter(event, outcome.reason)
        return outcome

    async def _run(self, handler: Handler, event: SyncEvent) -> SyncOutcome:
        try:
            outcome = await asyncio.wait_for(handler(event.payload), self.config.reconcile_timeout_seconds)
        except asyncio.TimeoutError:
            return SyncOutcome.warning(
                f"timed out after {self.config.reconcile_timeout_seconds:.0f}s", retryable=True
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception(f"Handler for {event.topic} ({event.entity_key}) raised")
            return SyncOutcome.warning(f"handler error: {type(e).__name__}: {e}", retryable=True)

        if outcome is None:
            return SyncOutcome.ok()
        return outcome

    def _log_outcome(self, event: SyncEvent, outcome: SyncOutcome, elapsed: float) -> None:
        message = f"{event.topic} [{event.entity_key}] -> {outcome} in {elapsed * 1000:.0f}ms"
        if outcome.is_warning:
            log.warning(message)
        elif outcome.is_skipped:
            log.info(message)
        else:
            log.debug(message)

    async def _dead_letter(self, event: SyncEvent, reason: str) -> None:
        if self.dead_letters is None:
            return
        try:
            await self.dead_letters.push(event, reason)
        except Exception as e:
            log.error(f"Could not dead-letter {event.topic} ({event.entity_key}): {e}")
