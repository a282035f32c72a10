"""
Store client for the Redis key-value store.

``StoreClient`` wraps a single ``redis.Redis`` instance. That instance is
either a direct connection pool or a Sentinel-managed pool that follows the
current master. Callers get the same small contract in both modes: get, set
with expiry, delete, expire, scan by prefix, ttl and a health check.

Direct connections use a blocking pool: callers beyond ``pool_size`` wait up
to ``dial_timeout`` for a free connection. The Sentinel-managed pool comes
from redis-py as is and fails immediately once ``pool_size`` is exhausted.
"""
import math
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, Optional, Union

import redis
import structlog
from redis.sentinel import Sentinel

from chaincache.config.logging import log_error
from chaincache.config.settings import RedisSettings
from chaincache.exceptions import (
    CacheConnectionError,
    CacheNotFoundError,
    NoExpiryError,
    StoreError,
)

logger = structlog.get_logger()

TTL = Union[int, float, timedelta]

SCAN_BATCH_SIZE = 100

MODE_DIRECT = "direct"
MODE_SENTINEL = "sentinel"

_GLOB_SPECIAL = set("*?[]\\")


def ttl_seconds(ttl: Optional[TTL]) -> int:
    """Convert a TTL to whole seconds, rounding up. ``None`` and 0 mean no expiry."""
    if ttl is None:
        return 0
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    else:
        seconds = float(ttl)
    if seconds < 0:
        raise ValueError(f"TTL must not be negative, got {ttl!r}")
    return int(math.ceil(seconds))


def glob_escape(prefix: str) -> str:
    """Escape Redis glob metacharacters so a prefix matches literally."""
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in prefix)


def connection_options(settings: RedisSettings) -> Dict[str, Any]:
    """Per-connection options shared by direct and Sentinel-managed pools."""
    return dict(
        password=settings.password or None,
        db=settings.db,
        decode_responses=True,
        socket_connect_timeout=settings.dial_timeout,
        socket_timeout=max(settings.read_timeout, settings.write_timeout),
        health_check_interval=settings.idle_timeout,
    )


def build_connection_pool(settings: RedisSettings, **overrides: Any) -> redis.BlockingConnectionPool:
    """
    Build the pool for a direct connection.

    Callers beyond ``pool_size`` wait up to ``dial_timeout`` for a free
    connection instead of failing straight away.
    """
    options = connection_options(settings)
    options.update(overrides)
    return redis.BlockingConnectionPool(
        host=settings.host,
        port=settings.port,
        max_connections=settings.pool_size,
        timeout=settings.dial_timeout,
        **options,
    )


class StoreClient:
    """
    Minimal, reliable transport to Redis.

    The client is created once at process start (see ``StoreClient.connect``)
    and closed at shutdown. It is safe to share between threads; redis-py
    hands each call its own pooled connection.
    """

    def __init__(
        self,
        client: redis.Redis,
        settings: Optional[RedisSettings] = None,
        sentinel: Optional[Sentinel] = None,
    ):
        """
        Wrap an existing Redis client.

        Args:
            client: Connected redis-py client
            settings: Settings the client was built from, if any
            sentinel: Sentinel group that manages ``client``, in failover mode
        """
        self._redis = client
        self._sentinel = sentinel
        self.settings = settings
        self._closed = threading.Event()
        self._close_lock = threading.Lock()

    @property
    def mode(self) -> str:
        return MODE_SENTINEL if self._sentinel is not None else MODE_DIRECT

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @classmethod
    def connect(cls, settings: RedisSettings) -> "StoreClient":
        """
        Build a direct or Sentinel-backed client and PING it.

        Args:
            settings: Redis connection settings

        Returns:
            A connected StoreClient

        Raises:
            CacheConnectionError: If the initial PING fails
        """
        sentinel = None
        if settings.sentinel_enabled:
            sentinel = Sentinel(
                settings.sentinel_nodes,
                sentinel_kwargs={
                    "password": settings.password or None,
                    "socket_connect_timeout": settings.dial_timeout,
                    "socket_timeout": settings.read_timeout,
                },
            )
            client = sentinel.master_for(
                settings.sentinel_master,
                max_connections=settings.pool_size,
                **connection_options(settings),
            )
        else:
            client = redis.Redis(connection_pool=build_connection_pool(settings))

        store = cls(client, settings=settings, sentinel=sentinel)
        try:
            client.ping()
        except redis.RedisError as e:
            log_error(logger, e, {"operation": "connect", "mode": store.mode})
            store.close()
            raise CacheConnectionError(
                f"failed to connect to Redis: {e}", operation="connect"
            ) from e

        store._warm_pool(settings.min_idle_conns)
        logger.info(
            "redis_connection_established",
            mode=store.mode,
            address=settings.sentinel_master if sentinel is not None else settings.address,
            db=settings.db,
            pool_size=settings.pool_size,
        )
        return store

    def _warm_pool(self, count: int) -> None:
        """Open ``count`` pooled connections up front so they sit idle in the pool."""
        if count <= 0:
            return
        pool = self._redis.connection_pool
        connections = []
        try:
            for _ in range(count):
                connections.append(pool.get_connection())
        except redis.RedisError as e:
            logger.warning("redis_pool_warmup_incomplete", opened=len(connections), error=str(e))
        finally:
            for connection in connections:
                pool.release(connection)

    def _ensure_open(self, operation: str, key: Optional[str] = None) -> None:
        if self._closed.is_set():
            raise StoreError("Redis client is closed", operation=operation, key=key)

    @contextmanager
    def _translate_errors(self, operation: str, key: Optional[str] = None):
        try:
            yield
        except redis.RedisError as e:
            raise StoreError(
                f"failed to {operation} key {key} in Redis: {e}",
                operation=operation,
                key=key,
            ) from e

    def is_healthy(self) -> bool:
        """Liveness check. Never raises."""
        if self._closed.is_set():
            return False
        try:
            return bool(self._redis.ping())
        except (redis.RedisError, OSError) as e:
            logger.warning("redis_health_check_failed", mode=self.mode, error=str(e))
            return False

    def set_with_expiry(self, key: str, value: str, ttl: Optional[TTL]) -> None:
        """Write ``value`` under ``key``. A TTL of 0 means no expiry."""
        seconds = ttl_seconds(ttl)
        self._ensure_open("set", key)
        with self._translate_errors("set", key):
            if seconds:
                self._redis.set(key, value, ex=seconds)
            else:
                self._redis.set(key, value)

    def get(self, key: str) -> str:
        """Return the raw value, raising CacheNotFoundError if the key is absent."""
        self._ensure_open("get", key)
        with self._translate_errors("get", key):
            value = self._redis.get(key)
        if value is None:
            raise CacheNotFoundError(key, operation="get")
        return value

    def delete(self, key: str) -> bool:
        """Delete ``key``. Returns True if it existed."""
        self._ensure_open("delete", key)
        with self._translate_errors("delete", key):
            return bool(self._redis.delete(key))

    def expire(self, key: str, ttl: TTL) -> bool:
        """Set the expiration of an existing key. Returns False if the key is absent."""
        seconds = ttl_seconds(ttl)
        self._ensure_open("expire", key)
        with self._translate_errors("expire", key):
            if not seconds:
                # EXPIRE 0 would delete the key, 0 means no expiry here
                return bool(self._redis.persist(key)) or bool(self._redis.exists(key))
            return bool(self._redis.expire(key, seconds))

    def scan_by_prefix(self, prefix: str, count: int = SCAN_BATCH_SIZE) -> Iterator[str]:
        """
        Lazily enumerate keys starting with ``prefix`` using SCAN.

        The enumeration is not a snapshot: keys created or deleted while it
        runs may or may not be returned. Restart by calling again.
        """
        self._ensure_open("scan", prefix)
        pattern = glob_escape(prefix) + "*"
        with self._translate_errors("scan", prefix):
            for key in self._redis.scan_iter(match=pattern, count=count):
                yield key

    def ttl(self, key: str) -> timedelta:
        """Remaining TTL of ``key``; NoExpiryError if it has none or is absent."""
        self._ensure_open("ttl", key)
        with self._translate_errors("ttl", key):
            seconds = self._redis.ttl(key)
        # -1: no expiry, -2: key does not exist
        if seconds is None or seconds < 0:
            raise NoExpiryError(key)
        return timedelta(seconds=seconds)

    def close(self) -> None:
        """Release pooled connections and mark the client unusable. Idempotent."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()

        try:
            self._redis.close()
            self._redis.connection_pool.disconnect()
        except redis.RedisError as e:
            logger.error("redis_close_failed", error=str(e))

        if self._sentinel is not None:
            for sentinel_client in self._sentinel.sentinels:
                try:
                    sentinel_client.close()
                except redis.RedisError as e:
                    logger.error("redis_sentinel_close_failed", error=str(e))

        logger.info("redis_connection_closed", mode=self.mode)

    def __enter__(self) -> "StoreClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
