"""
chaincache - Redis caching layer for API responses and blockchain data

This package derives deterministic cache keys from request inputs, stores
JSON-encoded values with TTLs in Redis (directly or behind Sentinel
failover) and supports targeted or prefix-wide invalidation.
"""

from .exceptions import (
    CacheConnectionError,
    CacheError,
    CacheNotFoundError,
    CacheUnavailableError,
    ConfigurationError,
    NoExpiryError,
    SerializationError,
    StoreError,
)
from .keys import (
    ACCOUNT_PREFIX,
    API_PREFIX,
    BLOCKCHAIN_PREFIX,
    TRANSACTION_PREFIX,
    api_cache_key,
    blockchain_cache_key,
    blockchain_prefix,
    generate_cache_key,
)
from .store import StoreClient
from .service import CacheService
from .bootstrap import create_store, open_cache

__all__ = [
    'CacheConnectionError',
    'CacheError',
    'CacheNotFoundError',
    'CacheUnavailableError',
    'ConfigurationError',
    'NoExpiryError',
    'SerializationError',
    'StoreError',
    'ACCOUNT_PREFIX',
    'API_PREFIX',
    'BLOCKCHAIN_PREFIX',
    'TRANSACTION_PREFIX',
    'api_cache_key',
    'blockchain_cache_key',
    'blockchain_prefix',
    'generate_cache_key',
    'StoreClient',
    'CacheService',
    'create_store',
    'open_cache',
]
