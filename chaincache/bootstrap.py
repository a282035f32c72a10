"""
Process-level wiring for the cache layer.

The store connection is created once here, handed to the CacheService by
reference and closed when the process shuts down.
"""
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from chaincache.config.logging import configure_logging
from chaincache.config.settings import (
    CacheSettings,
    RedisSettings,
    load_cache_settings,
    load_redis_settings,
)
from chaincache.monitoring import log_metrics
from chaincache.service import CacheService
from chaincache.store import StoreClient

logger = structlog.get_logger()


def create_store(settings: Optional[RedisSettings] = None) -> StoreClient:
    """Connect to Redis, loading settings from the environment if none are given."""
    if settings is None:
        settings = load_redis_settings()
    return StoreClient.connect(settings)


@contextmanager
def open_cache(
    redis_settings: Optional[RedisSettings] = None,
    cache_settings: Optional[CacheSettings] = None,
) -> Iterator[CacheService]:
    """
    Connect, yield a CacheService and close the connection on exit.

    Raises:
        ConfigurationError: If settings are missing or invalid
        CacheConnectionError: If Redis cannot be reached
    """
    if cache_settings is None:
        cache_settings = load_cache_settings()
    configure_logging(cache_settings.log_level)

    store = create_store(redis_settings)
    try:
        yield CacheService(store, default_ttl=cache_settings.default_ttl)
    finally:
        log_metrics()
        store.close()
        logger.info("cache_shutdown_complete")
