"""
Counter store module for rate limit state.

Provides pluggable counter backends (in-memory and Redis) with atomic
increment and TTL expiry, shared across instances when Redis is used.
"""

from agentgate.store.base import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    CounterStore,
    CounterStoreError,
)
from agentgate.store.memory import InMemoryCounterStore
from agentgate.store.redis import RedisCounterStore
from agentgate.store.factory import create_counter_store, initialize_counter_store

__all__ = [
    "TTL_MISSING",
    "TTL_NO_EXPIRY",
    "CounterStore",
    "CounterStoreError",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
    "initialize_counter_store",
]
