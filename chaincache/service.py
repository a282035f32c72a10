"""
Cache service for API responses and blockchain data.

The service turns domain-shaped requests (endpoint + query parameters, or
data type + identifier) into store calls: it derives the key, encodes the
value as JSON and applies the default TTL. Every operation starts with a
health check and fails fast with CacheUnavailableError when Redis is down.
"""
import dataclasses
import functools
import json
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Mapping, Optional

import structlog
from pydantic import BaseModel, TypeAdapter

from chaincache.exceptions import (
    CacheNotFoundError,
    CacheUnavailableError,
    NoExpiryError,
    SerializationError,
    StoreError,
)
from chaincache.config.logging import log_error
from chaincache.keys import (
    api_cache_key,
    blockchain_cache_key,
    blockchain_prefix,
    cache_type_for_prefix,
)
from chaincache.monitoring import (
    record_hit,
    record_invalidations,
    record_miss,
    track_latency,
)
from chaincache.store import TTL, StoreClient, ttl_seconds

logger = structlog.get_logger()

DEFAULT_TTL = 300  # 5 minutes


def _encode_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@functools.lru_cache(maxsize=128)
def _adapter(into: Any) -> TypeAdapter:
    return TypeAdapter(into)


class CacheService:
    """
    High-level cache operations on top of a StoreClient.

    The service holds a reference to the store but does not own it; whoever
    created the store closes it.
    """

    def __init__(self, store: StoreClient, default_ttl: TTL = DEFAULT_TTL):
        """
        Initialize the cache service.

        Args:
            store: Connected store client
            default_ttl: TTL used when a caller passes 0 or None
        """
        if ttl_seconds(default_ttl) <= 0:
            raise ValueError("default_ttl must be positive")
        self.store = store
        self.default_ttl = default_ttl

    def _ensure_available(self, operation: str, key: Optional[str] = None) -> None:
        if self.store is None or not self.store.is_healthy():
            logger.warning("cache_unavailable", operation=operation, key=key)
            raise CacheUnavailableError(operation=operation, key=key)

    def _resolve_ttl(self, ttl: Optional[TTL]) -> TTL:
        return ttl if ttl else self.default_ttl

    @staticmethod
    @contextmanager
    def _store_call(operation: str, key: Optional[str]):
        """Report store failures under the service operation that caused them."""
        try:
            yield
        except StoreError as e:
            raise StoreError(e.message, operation=operation, key=key) from e

    @staticmethod
    def _encode(value: Any, operation: str, key: str) -> str:
        try:
            return json.dumps(
                value, default=_encode_default, separators=(",", ":"), allow_nan=False
            )
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"failed to serialize value for caching: {e}", operation=operation, key=key
            ) from e

    @staticmethod
    def _decode(data: str, into: Any, operation: str, key: str) -> Any:
        try:
            value = json.loads(data)
            if into is not None:
                value = _adapter(into).validate_python(value)
            return value
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"failed to deserialize cached value for key {key}: {e}",
                operation=operation,
                key=key,
            ) from e

    def _write(self, cache_type: str, operation: str, key: str, value: Any, ttl: Optional[TTL]) -> str:
        self._ensure_available(operation, key)
        data = self._encode(value, operation, key)
        ttl = self._resolve_ttl(ttl)
        with track_latency(cache_type, "set"), self._store_call(operation, key):
            self.store.set_with_expiry(key, data, ttl)
        logger.info("cache_entry_stored", cache_type=cache_type, key=key, ttl=ttl_seconds(ttl))
        return key

    def _read(self, cache_type: str, operation: str, key: str, into: Any) -> Any:
        self._ensure_available(operation, key)
        with track_latency(cache_type, "get"), self._store_call(operation, key):
            try:
                data = self.store.get(key)
            except CacheNotFoundError as e:
                record_miss(cache_type)
                logger.debug("cache_miss", cache_type=cache_type, key=key)
                raise CacheNotFoundError(key, operation=operation) from e
        value = self._decode(data, into, operation, key)
        record_hit(cache_type)
        logger.debug("cache_hit", cache_type=cache_type, key=key)
        return value

    def cache_api_response(
        self,
        endpoint: str,
        query_params: Optional[Mapping[str, str]],
        response: Any,
        ttl: Optional[TTL] = 0,
    ) -> str:
        """
        Cache an API response.

        Args:
            endpoint: Endpoint path the response was served from
            query_params: Query parameters of the request, in any order
            response: JSON-encodable value (pydantic models and dataclasses included)
            ttl: Time-to-live; 0 or None uses the default TTL

        Returns:
            The cache key the response was stored under
        """
        key = api_cache_key(endpoint, query_params)
        return self._write("api", "cache_api_response", key, response, ttl)

    def get_cached_api_response(
        self,
        endpoint: str,
        query_params: Optional[Mapping[str, str]],
        into: Any = None,
    ) -> Any:
        """
        Get a cached API response.

        Args:
            endpoint: Endpoint path
            query_params: Query parameters, in any order
            into: Optional type to validate the cached JSON into

        Returns:
            The cached response

        Raises:
            CacheNotFoundError: If nothing is cached for the request
        """
        key = api_cache_key(endpoint, query_params)
        return self._read("api", "get_cached_api_response", key, into)

    def cache_blockchain_data(
        self,
        data_type: str,
        identifier: str,
        data: Any,
        ttl: Optional[TTL] = 0,
    ) -> str:
        """
        Cache blockchain data such as account info, a transaction or a block.

        ``data_type`` selects the namespace: ``"transaction"`` and ``"account"``
        have their own, anything else shares the generic blockchain one.
        """
        key = blockchain_cache_key(data_type, identifier)
        return self._write(
            cache_type_for_prefix(key), "cache_blockchain_data", key, data, ttl
        )

    def get_cached_blockchain_data(self, data_type: str, identifier: str, into: Any = None) -> Any:
        """Get cached blockchain data; CacheNotFoundError on a miss."""
        key = blockchain_cache_key(data_type, identifier)
        return self._read(cache_type_for_prefix(key), "get_cached_blockchain_data", key, into)

    def _invalidate_prefix(self, prefix: str, operation: str) -> int:
        count = 0
        with track_latency(cache_type_for_prefix(prefix), "invalidate"), \
                self._store_call(operation, prefix):
            for key in self.store.scan_by_prefix(prefix):
                try:
                    self.store.delete(key)
                except StoreError as e:
                    log_error(logger, e, {"prefix": prefix, "skipped": True})
                    continue
                count += 1

        record_invalidations(cache_type_for_prefix(prefix), count)
        logger.info("cache_prefix_invalidated", prefix=prefix, count=count)
        return count

    def invalidate_by_prefix(self, prefix: str) -> int:
        """
        Delete every entry whose key starts with ``prefix``.

        Best effort: keys written while the scan runs may be missed, and a
        key that fails to delete is logged and skipped. Only a failure of the
        scan itself raises.

        Returns:
            Number of keys deleted
        """
        if not prefix:
            raise ValueError("prefix must not be empty")
        self._ensure_available("invalidate_by_prefix", prefix)
        return self._invalidate_prefix(prefix, "invalidate_by_prefix")

    def invalidate_by_key(self, key: str) -> bool:
        """Delete a single entry. Returns True if it existed."""
        self._ensure_available("invalidate_by_key", key)
        return self._delete_key(key, "invalidate_by_key")

    def _delete_key(self, key: str, operation: str) -> bool:
        with track_latency("key", "delete"), self._store_call(operation, key):
            deleted = self.store.delete(key)
        record_invalidations("key", int(deleted))
        logger.info("cache_key_invalidated", key=key, existed=deleted)
        return deleted

    def invalidate_blockchain_cache(self, data_type: str, identifier: str = "") -> int:
        """
        Invalidate blockchain entries.

        With an empty ``identifier`` the whole namespace of ``data_type`` is
        cleared, otherwise only the entry for that identifier.

        Returns:
            Number of keys deleted
        """
        prefix = blockchain_prefix(data_type)
        self._ensure_available("invalidate_blockchain_cache", prefix)

        if not identifier:
            return self._invalidate_prefix(prefix, "invalidate_blockchain_cache")

        key = blockchain_cache_key(data_type, identifier)
        return int(self._delete_key(key, "invalidate_blockchain_cache"))

    def set_ttl(self, key: str, ttl: TTL) -> None:
        """
        Update the TTL of an existing entry without touching its value.

        Raises:
            CacheNotFoundError: If the key does not exist
        """
        self._ensure_available("set_ttl", key)
        with self._store_call("set_ttl", key):
            try:
                self.store.get(key)
            except CacheNotFoundError as e:
                raise CacheNotFoundError(key, operation="set_ttl") from e

            if not self.store.expire(key, ttl):
                # Expired or deleted between the existence check and EXPIRE
                raise CacheNotFoundError(key, operation="set_ttl")

        logger.info("cache_ttl_updated", key=key, ttl=ttl_seconds(ttl))

    def get_ttl(self, key: str) -> timedelta:
        """
        Get the remaining TTL of an entry.

        Raises:
            NoExpiryError: If the key has no TTL or does not exist
        """
        self._ensure_available("get_ttl", key)
        with self._store_call("get_ttl", key):
            try:
                remaining = self.store.ttl(key)
            except NoExpiryError as e:
                raise NoExpiryError(key, operation="get_ttl") from e
        logger.debug("cache_ttl_retrieved", key=key, ttl=remaining.total_seconds())
        return remaining
