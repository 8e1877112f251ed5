"""Redis counter store implementation."""

import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from agentgate.store.base import CounterStore, CounterStoreError

logger = logging.getLogger(__name__)


class RedisCounterStore(CounterStore):
    """
    Redis counter store for distributed rate limiting.

    Best for:
    - Multi-instance deployments
    - Limits that must hold across every server process

    Uses native INCR, EXPIRE and TTL, so increments are atomic
    across all clients sharing the server.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        prefix: str = "agentgate:",
        max_connections: int = 10,
        socket_timeout: float = 2.0,
        socket_connect_timeout: float = 2.0,
    ) -> None:
        """
        Initialize Redis store.

        Building the client does not open a socket, but a malformed URL
        raises here (ValueError from redis-py).

        Args:
            url: Redis connection URL
            prefix: Key prefix for namespacing
            max_connections: Maximum connections in pool
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
        """
        self._url = url
        self._prefix = prefix
        self._client: Any = redis.from_url(
            url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=True,
        )
        self._connected = False

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_key(self, key: str) -> str:
        """Get prefixed key."""
        return f"{self._prefix}{key}"

    async def connect(self) -> bool:
        """
        Verify the connection with a PING.

        Returns:
            True if the server answered
        """
        try:
            await self._client.ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self._url}")
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            return False

    async def increment(self, key: str) -> int:
        """Atomically increment a counter with INCR."""
        try:
            return int(await self._client.incr(self._get_key(key)))
        except (RedisError, OSError) as e:
            self._connected = False
            raise CounterStoreError(f"Redis INCR failed for {key}: {e}") from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a key's expiry with EXPIRE."""
        try:
            return bool(await self._client.expire(self._get_key(key), ttl_seconds))
        except (RedisError, OSError) as e:
            self._connected = False
            raise CounterStoreError(f"Redis EXPIRE failed for {key}: {e}") from e

    async def ttl(self, key: str) -> int:
        """Get remaining TTL with the TTL command."""
        try:
            return int(await self._client.ttl(self._get_key(key)))
        except (RedisError, OSError) as e:
            self._connected = False
            raise CounterStoreError(f"Redis TTL failed for {key}: {e}") from e

    async def close(self) -> None:
        """Close the Redis connection."""
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            self._connected = False

    async def health_check(self) -> dict[str, Any]:
        """Return health status with Redis info."""
        try:
            info = await self._client.info("server")
            self._connected = True
            return {
                "backend": self.name,
                "connected": True,
                "redis_version": info.get("redis_version"),
                "uptime_seconds": info.get("uptime_in_seconds"),
            }
        except (RedisError, OSError) as e:
            self._connected = False
            return {
                "backend": self.name,
                "connected": False,
                "error": str(e),
            }
