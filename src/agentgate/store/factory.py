"""Counter store factory with in-memory fallback."""

import logging

from agentgate.config import Settings, settings as default_settings
from agentgate.store.base import CounterStore
from agentgate.store.memory import InMemoryCounterStore
from agentgate.store.redis import RedisCounterStore

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379"


def create_counter_store(
    backend: str | None = None,
    url: str | None = None,
    settings: Settings | None = None,
) -> CounterStore:
    """
    Create a counter store instance.

    A Redis store that cannot be constructed (malformed URL, bad
    options) is replaced by an in-memory store instead of raising.

    Args:
        backend: Backend type ("memory" or "redis"), defaults to config
        url: Redis URL, defaults to config (then to localhost)
        settings: Settings to read defaults from

    Returns:
        CounterStore instance

    Raises:
        ValueError: If backend type is unknown
    """
    cfg = settings or default_settings
    backend_type = backend or cfg.store_backend

    if backend_type == "memory":
        return InMemoryCounterStore()

    if backend_type != "redis":
        raise ValueError(f"Unknown store backend: {backend_type}")

    redis_url = url or cfg.redis_url
    if not redis_url:
        logger.info(f"Redis URL not configured, defaulting to {DEFAULT_REDIS_URL}")
        redis_url = DEFAULT_REDIS_URL

    try:
        return RedisCounterStore(
            url=redis_url,
            prefix=cfg.redis_prefix,
            socket_timeout=cfg.redis_socket_timeout,
            socket_connect_timeout=cfg.redis_socket_timeout,
        )
    except Exception as e:
        logger.warning(
            f"Could not create Redis counter store ({e}), "
            "falling back to in-memory store. Rate limits will not be "
            "shared across instances."
        )
        return InMemoryCounterStore()


async def initialize_counter_store(
    backend: str | None = None,
    url: str | None = None,
    settings: Settings | None = None,
) -> CounterStore:
    """
    Create the counter store and verify it is reachable.

    Call this once during application startup. If Redis does not
    answer a PING, the in-memory store is used for the lifetime of
    the process.

    Returns:
        Initialized CounterStore instance
    """
    store = create_counter_store(backend=backend, url=url, settings=settings)

    if isinstance(store, RedisCounterStore):
        connected = await store.connect()
        if not connected:
            logger.warning("Redis unreachable, using fallback in-memory counter store")
            await store.close()
            store = InMemoryCounterStore()

    if isinstance(store, InMemoryCounterStore):
        await store.start_cleanup_task()

    logger.info(f"Initialized {store.name} counter store")
    return store
