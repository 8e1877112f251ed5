"""Abstract base class for counter store backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

# Sentinels returned by ttl(), matching the Redis TTL command
TTL_NO_EXPIRY = -1
TTL_MISSING = -2


class CounterStoreError(Exception):
    """Raised when a counter store operation cannot be completed."""

    pass


@dataclass
class CounterEntry:
    """
    A counter value with optional expiry.

    Attributes:
        count: Current counter value
        expires_at: Absolute expiry on the store's clock (None = no expiry)
    """

    count: int = 0
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired at ``now``."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at

    def ttl_remaining(self, now: float) -> float | None:
        """Get remaining TTL in seconds, or None if no expiry."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - now)


class CounterStore(ABC):
    """
    Abstract key-value counter with atomic increment and TTL expiry.

    Implement this class to add new shared stores for rate limit
    counters. Operations may raise CounterStoreError.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this backend.

        Returns:
            Backend name (e.g., 'memory', 'redis')
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the backend is connected and healthy.

        Returns:
            True if connected, False otherwise
        """
        ...

    @abstractmethod
    async def increment(self, key: str) -> int:
        """
        Atomically increment a counter.

        Creates the key at 1 if absent.

        Args:
            key: Counter key

        Returns:
            Value after the increment
        """
        ...

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """
        Set a key to expire ``ttl_seconds`` from now.

        Overwrites any TTL already on the key.

        Args:
            key: Counter key
            ttl_seconds: Seconds until expiry

        Returns:
            True if the key existed, False otherwise
        """
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """
        Get remaining time to live for a key.

        Args:
            key: Counter key

        Returns:
            Remaining whole seconds, TTL_NO_EXPIRY if the key has no
            expiry, or TTL_MISSING if the key does not exist
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the store connection."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """
        Perform a health check on the store backend.

        Returns:
            Dict with health status info
        """
        return {
            "backend": self.name,
            "connected": self.is_connected,
        }
