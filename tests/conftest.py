"""Shared fixtures and an in-memory Redis double for the cache tests."""
import re
from collections import Counter
from unittest.mock import Mock

import pytest
import redis

from chaincache.config.settings import RedisSettings
from chaincache.service import CacheService
from chaincache.store import StoreClient


def _glob_to_regex(pattern):
    """Translate the subset of Redis glob syntax the store client emits."""
    parts = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


class FakeRedis:
    """
    In-memory stand-in for ``redis.Redis`` with ``decode_responses=True``.

    TTLs do not count down; ``ttl`` returns the seconds last set. Set
    ``healthy = False`` to make every command raise a connection error.
    """

    def __init__(self):
        self.data = {}
        self.expiries = {}
        self.healthy = True
        self.fail_delete = set()
        self.fail_scan = False
        self.closed = False
        self.calls = Counter()
        self.connection_pool = Mock()

    def _record(self, command):
        self.calls[command] += 1
        if not self.healthy:
            raise redis.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    def ping(self):
        self._record("ping")
        return True

    def get(self, key):
        self._record("get")
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self._record("set")
        self.data[key] = value
        if ex:
            self.expiries[key] = ex
        else:
            self.expiries.pop(key, None)
        return True

    def delete(self, *keys):
        self._record("delete")
        removed = 0
        for key in keys:
            if key in self.fail_delete:
                raise redis.ResponseError(f"cannot delete {key}")
            if key in self.data:
                del self.data[key]
                self.expiries.pop(key, None)
                removed += 1
        return removed

    def exists(self, *keys):
        self._record("exists")
        return sum(1 for key in keys if key in self.data)

    def expire(self, key, seconds):
        self._record("expire")
        if key not in self.data:
            return False
        self.expiries[key] = seconds
        return True

    def persist(self, key):
        self._record("persist")
        return self.expiries.pop(key, None) is not None

    def ttl(self, key):
        self._record("ttl")
        if key not in self.data:
            return -2
        return self.expiries.get(key, -1)

    def scan_iter(self, match=None, count=None):
        self._record("scan")
        if self.fail_scan:
            raise redis.ConnectionError("Connection reset by peer")
        regex = _glob_to_regex(match or "*")
        for key in list(self.data):
            if regex.fullmatch(key):
                yield key

    def close(self):
        self.closed = True


class IdleConnection(redis.Connection):
    """Pooled connection that never opens a socket and never has data waiting."""

    opened = []

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.opened.append(self)

    def connect(self):
        pass

    def disconnect(self, *args, **kwargs):
        pass

    def can_read(self, timeout=0):
        return False


@pytest.fixture
def fake_redis():
    """In-memory Redis double, healthy until told otherwise."""
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    """Store client over the in-memory double."""
    return StoreClient(fake_redis)


@pytest.fixture
def service(store):
    """Cache service with a 5 minute default TTL."""
    return CacheService(store, default_ttl=300)


@pytest.fixture
def redis_settings():
    """Direct-mode settings that ignore the environment and any .env file."""
    return RedisSettings(
        _env_file=None,
        host="cache.internal",
        port=6380,
        password="s3cret",
        db=2,
        pool_size=20,
        min_idle_conns=3,
        max_conn_age=1800,
        idle_timeout=300,
        sentinel_enabled=False,
    )


@pytest.fixture
def idle_connection():
    """A fresh IdleConnection subclass whose ``opened`` list starts empty."""
    class Connection(IdleConnection):
        opened = []

    return Connection
