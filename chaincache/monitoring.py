"""
Prometheus metrics for the cache layer.

Counters are process-wide and labelled by cache type, so hit ratios can be
read per namespace (api, blockchain, transaction, account).
"""
import time
from contextlib import contextmanager
from typing import Dict, Iterator

import structlog
from prometheus_client import Counter, Histogram

logger = structlog.get_logger()

CACHE_HITS = Counter('chaincache_cache_hits_total', 'Total number of cache hits', ['cache_type'])
CACHE_MISSES = Counter('chaincache_cache_misses_total', 'Total number of cache misses', ['cache_type'])
CACHE_INVALIDATIONS = Counter('chaincache_cache_invalidations_total',
                              'Total number of cache entries invalidated', ['cache_type'])
CACHE_LATENCY = Histogram('chaincache_cache_latency_seconds', 'Cache operation latency in seconds',
                          ['cache_type', 'operation'])

CACHE_TYPES = ('api', 'blockchain', 'transaction', 'account', 'key', 'prefix')


def record_hit(cache_type: str) -> None:
    CACHE_HITS.labels(cache_type=cache_type).inc()


def record_miss(cache_type: str) -> None:
    CACHE_MISSES.labels(cache_type=cache_type).inc()


def record_invalidations(cache_type: str, count: int = 1) -> None:
    if count > 0:
        CACHE_INVALIDATIONS.labels(cache_type=cache_type).inc(count)


@contextmanager
def track_latency(cache_type: str, operation: str) -> Iterator[None]:
    """Observe the wall time of the wrapped block, successful or not."""
    start = time.perf_counter()
    try:
        yield
    finally:
        CACHE_LATENCY.labels(cache_type=cache_type, operation=operation).observe(
            time.perf_counter() - start
        )


def get_hit_ratio(cache_type: str) -> float:
    """
    Get cache hit ratio for a specific cache type.

    Args:
        cache_type: Type of cache (api, blockchain, transaction, account)

    Returns:
        Hit ratio as a float between 0 and 1
    """
    hits = CACHE_HITS.labels(cache_type=cache_type)._value.get()
    misses = CACHE_MISSES.labels(cache_type=cache_type)._value.get()
    total = hits + misses

    if total == 0:
        return 0.0

    return hits / total


def get_metrics_report() -> Dict[str, float]:
    """Hit ratios and invalidation totals for every cache type."""
    report = {}
    for cache_type in CACHE_TYPES:
        report[f'{cache_type}_hit_ratio'] = get_hit_ratio(cache_type)
        report[f'{cache_type}_invalidations'] = (
            CACHE_INVALIDATIONS.labels(cache_type=cache_type)._value.get()
        )
    return report


def log_metrics() -> None:
    """Log current cache metrics."""
    logger.info("cache_metrics_report", **get_metrics_report())
