"""Configuration for the chaincache store client and service."""

from .settings import (
    CacheSettings,
    RedisSettings,
    load_cache_settings,
    load_redis_settings,
)
from .logging import configure_logging, log_error

__all__ = [
    'CacheSettings',
    'RedisSettings',
    'load_cache_settings',
    'load_redis_settings',
    'configure_logging',
    'log_error',
]
