# =============================================================================
# File: guildsync/infra/reliability/keyed_lock.py
# Description: In-process per-key asyncio locks with reference counting
# =============================================================================

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    refs: int = 0


class KeyedLock:
    """
    One ``asyncio.Lock`` per key, created on demand and dropped when the
    last holder or waiter leaves, so the table only holds active keys.

    Usage:
        locks = KeyedLock()
        async with locks.hold("task:123"):
            ...
    """

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.refs += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.refs -= 1
            if entry.refs == 0:
                self._entries.pop(key, None)

    def locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
