"""Time-bounded key/value map.

Entries carry the time they were inserted. Reads treat anything older than the
TTL as absent and drop it on the way out; ``prune`` sweeps the whole map.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


def now_ms() -> int:
    return int(time.time() * 1000)


def is_expired(inserted_at: int, ttl_ms: int, now: int) -> bool:
    """True once an entry has lived strictly longer than its TTL."""
    return now - inserted_at > ttl_ms


class ExpiringMap(Generic[K, V]):
    """In-memory map with per-entry TTL."""

    def __init__(self, ttl_ms: int, clock: Callable[[], int] | None = None) -> None:
        self.ttl_ms = ttl_ms
        self._clock = clock or now_ms
        self._entries: dict[K, tuple[V, int]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, inserted_at = entry
        if is_expired(inserted_at, self.ttl_ms, self._clock()):
            del self._entries[key]
            return None
        return value

    def put(self, key: K, value: V) -> None:
        # Re-inserting refreshes the timestamp
        self._entries[key] = (value, self._clock())

    def prune(self) -> int:
        """Drop expired entries. Returns entries removed."""
        now = self._clock()
        expired = [k for k, (_, ts) in self._entries.items() if is_expired(ts, self.ttl_ms, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)
