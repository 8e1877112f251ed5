"""In-memory counter store implementation."""

import asyncio
import logging
import math
import time
from typing import Any, Callable

from agentgate.store.base import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    CounterEntry,
    CounterStore,
)

logger = logging.getLogger(__name__)


class InMemoryCounterStore(CounterStore):
    """
    In-memory counter store using a simple dictionary.

    Best for:
    - Single-instance deployments
    - Development and testing
    - Fallback when Redis is unreachable

    Limitations:
    - Not shared across instances, so limits are per process
    - Lost on restart
    """

    def __init__(
        self,
        cleanup_interval_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize in-memory store.

        Args:
            cleanup_interval_seconds: How often to purge expired entries
            clock: Time source in seconds (monotonic by default)
        """
        self._store: dict[str, CounterEntry] = {}
        self._cleanup_interval = cleanup_interval_seconds
        self._cleanup_task: asyncio.Task | None = None
        self._clock = clock
        self._lock = asyncio.Lock()
        self._connected = True

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _live_entry(self, key: str, now: float) -> CounterEntry | None:
        """Get an entry, evicting it if expired (caller must hold lock)."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            del self._store[key]
            return None
        return entry

    async def increment(self, key: str) -> int:
        """Increment a counter, creating it at 1 if absent."""
        async with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                entry = CounterEntry()
                self._store[key] = entry
            entry.count += 1
            return entry.count

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a key's expiry relative to now."""
        async with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return False
            if ttl_seconds <= 0:
                # Same as Redis: a non-positive TTL deletes the key
                del self._store[key]
                return True
            entry.expires_at = now + ttl_seconds
            return True

    async def ttl(self, key: str) -> int:
        """Get remaining TTL in whole seconds, or a sentinel."""
        async with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return TTL_MISSING
            remaining = entry.ttl_remaining(now)
            if remaining is None:
                return TTL_NO_EXPIRY
            return math.ceil(remaining)

    async def close(self) -> None:
        """Close the store and stop cleanup task."""
        self._connected = False
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._store.clear()

    async def cleanup_expired(self) -> int:
        """Remove all expired entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [
                k for k, v in self._store.items()
                if v.is_expired(now)
            ]
            for key in expired_keys:
                del self._store[key]

            if expired_keys:
                logger.debug(f"Cleaned up {len(expired_keys)} expired counters")

            return len(expired_keys)

    async def start_cleanup_task(self) -> None:
        """Start background task to periodically purge expired entries."""
        if self._cleanup_task is not None:
            return

        async def cleanup_loop():
            while self._connected:
                try:
                    await asyncio.sleep(self._cleanup_interval)
                    await self.cleanup_expired()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"Counter cleanup error: {e}")

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    async def health_check(self) -> dict[str, Any]:
        """Return health status with store statistics."""
        async with self._lock:
            now = self._clock()
            total_entries = len(self._store)
            expired_entries = sum(1 for v in self._store.values() if v.is_expired(now))

        return {
            "backend": self.name,
            "connected": self.is_connected,
            "total_entries": total_entries,
            "expired_entries": expired_entries,
        }

    def size(self) -> int:
        """Get current number of entries (sync method for convenience)."""
        return len(self._store)
