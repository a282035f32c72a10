"""
Exceptions raised by the chaincache store client and cache service.

Every error carries the operation and key it happened on so callers can log
or report it without re-deriving context. Underlying Redis errors are chained
with ``raise ... from``.
"""
from typing import Any, Dict, Optional


class CacheError(Exception):
    """Base exception for all cache errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.operation = operation
        self.key = key
        self.details = details or {}
        if operation:
            self.details["operation"] = operation
        if key:
            self.details["key"] = key
        super().__init__(self.message)


class ConfigurationError(CacheError):
    """Raised when Redis or cache settings are missing or malformed."""


class CacheConnectionError(CacheError):
    """Raised when the initial connection or liveness check fails."""


class CacheUnavailableError(CacheError):
    """Raised when a health check fails before an operation is attempted."""

    def __init__(self, operation: Optional[str] = None, key: Optional[str] = None):
        super().__init__(
            "Redis client is not initialized or unhealthy",
            operation=operation,
            key=key,
        )


class CacheNotFoundError(CacheError):
    """Raised when the requested key is absent from the store."""

    def __init__(self, key: str, operation: Optional[str] = None):
        super().__init__(f"key {key} not found in Redis", operation=operation, key=key)


class NoExpiryError(CacheError):
    """Raised when a key has no TTL or does not exist."""

    def __init__(self, key: str, operation: Optional[str] = "ttl"):
        super().__init__(
            f"cache key {key} does not exist or has no TTL",
            operation=operation,
            key=key,
        )


class SerializationError(CacheError):
    """Raised when a cached value cannot be encoded or decoded."""


class StoreError(CacheError):
    """Raised for any other transport or protocol failure reported by Redis."""
