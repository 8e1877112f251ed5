"""
Fixed-window rate limiting on top of a counter store.

Each identity gets one counter per window. The counter is created by
the first request, given a TTL equal to the window length, and
evicted by the store when that TTL elapses; the next request then
opens a fresh window.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from agentgate.store.base import TTL_MISSING, TTL_NO_EXPIRY, CounterStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check."""

    allowed: bool
    """Whether the request is allowed."""

    limit: int
    """Maximum requests allowed in the window."""

    remaining: int
    """Remaining requests in the current window."""

    reset_at: datetime
    """When the current window clears (UTC)."""

    @property
    def reset_epoch(self) -> int:
        """Reset time as Unix epoch seconds."""
        return int(self.reset_at.timestamp())

    def headers(self) -> dict[str, str]:
        """Rate limit headers for an HTTP response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_epoch),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
            "reset": self.reset_epoch,
        }


class FixedWindowRateLimiter:
    """
    Fixed-window request counter keyed by client identity.

    Counts are kept in a CounterStore, so limits are shared by every
    process using the same Redis server. With the in-memory fallback
    they hold per process only.

    Store failures fail open: the request is allowed rather than
    blocking all traffic while the store is down. Bursts straddling a
    window boundary may reach twice the nominal rate.
    """

    def __init__(
        self,
        store: CounterStore,
        limit: int = 10,
        window_seconds: int = 60,
        key_prefix: str = "ratelimit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize fixed window limiter.

        Args:
            store: Counter store holding per-identity counts
            limit: Maximum requests per window
            window_seconds: Window size in seconds
            key_prefix: Prefix for counter keys
            clock: Wall clock returning epoch seconds
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")

        self._store = store
        self._limit = limit
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def name(self) -> str:
        return "fixed_window"

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _get_key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    def _reset_at(self, now: float, ttl: int) -> datetime:
        return datetime.fromtimestamp(now + ttl, tz=timezone.utc)

    async def _count_request(self, key: str) -> tuple[int, int]:
        """Increment the window counter and return (count, ttl)."""
        count = await self._store.increment(key)

        if count == 1:
            await self._store.expire(key, self._window_seconds)
            return count, self._window_seconds

        ttl = await self._store.ttl(key)
        if ttl in (TTL_NO_EXPIRY, TTL_MISSING):
            # A failed expire or a race left the key without a TTL;
            # never let it live forever.
            logger.debug(f"Counter {key} had no TTL, re-arming window")
            await self._store.expire(key, self._window_seconds)
            ttl = self._window_seconds

        return count, ttl

    async def check_rate_limit(self, identity: str) -> RateLimitDecision:
        """
        Count a request for an identity and decide whether to allow it.

        Args:
            identity: Client identifier (e.g., IP address)

        Returns:
            RateLimitDecision for this request
        """
        key = self._get_key(identity)

        try:
            count, ttl = await self._count_request(key)
        except Exception as e:
            logger.warning(f"Rate limit store error for {identity}, failing open: {e}")
            return RateLimitDecision(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - 1,
                reset_at=self._reset_at(self._clock(), self._window_seconds),
            )

        now = self._clock()
        allowed = count <= self._limit

        if not allowed:
            logger.info(f"Rate limit exceeded for {identity} ({count}/{self._limit})")

        return RateLimitDecision(
            allowed=allowed,
            limit=self._limit,
            remaining=max(0, self._limit - count),
            reset_at=self._reset_at(now, ttl),
        )
