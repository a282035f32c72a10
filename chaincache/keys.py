"""
Cache key derivation.

A key is ``prefix + fnv1a_64(joined) + ":" + joined`` where ``joined`` is the
semantic input fields joined with ``:``. The hash keeps keys distinct, the
joined text stays in the key so it can be read in ``redis-cli``.
"""
from typing import Mapping, Optional

# Namespace prefixes
API_PREFIX = "api:"
BLOCKCHAIN_PREFIX = "blockchain:"
TRANSACTION_PREFIX = BLOCKCHAIN_PREFIX + "tx:"
ACCOUNT_PREFIX = BLOCKCHAIN_PREFIX + "account:"

KEY_SEPARATOR = ":"

# Data type discriminators for blockchain entries
DATA_TYPE_TRANSACTION = "transaction"
DATA_TYPE_ACCOUNT = "account"

_BLOCKCHAIN_PREFIXES = {
    DATA_TYPE_TRANSACTION: TRANSACTION_PREFIX,
    DATA_TYPE_ACCOUNT: ACCOUNT_PREFIX,
}

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(data: bytes) -> int:
    """Compute the 64-bit FNV-1a hash of ``data``."""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _UINT64_MASK
    return h


def generate_cache_key(prefix: str, *params: str) -> str:
    """
    Build a cache key from a namespace prefix and ordered input fields.

    Args:
        prefix: Namespace prefix, e.g. ``api:``
        *params: Input fields, already in a stable order

    Returns:
        The derived cache key
    """
    joined = KEY_SEPARATOR.join(params)
    fingerprint = fnv1a_64(joined.encode("utf-8"))
    return f"{prefix}{fingerprint}{KEY_SEPARATOR}{joined}"


def api_cache_key(endpoint: str, query_params: Optional[Mapping[str, str]] = None) -> str:
    """Derive the key for an API response, independent of parameter order."""
    fields = [endpoint]
    # Sorted by name so that equal mappings always give the same key
    for name, value in sorted((query_params or {}).items()):
        fields.append(f"{name}={value}")
    return generate_cache_key(API_PREFIX, *fields)


def blockchain_prefix(data_type: str) -> str:
    """Return the namespace for a blockchain data type."""
    return _BLOCKCHAIN_PREFIXES.get(data_type, BLOCKCHAIN_PREFIX)


def blockchain_cache_key(data_type: str, identifier: str) -> str:
    """Derive the key for a blockchain entry (account, transaction, block...)."""
    return generate_cache_key(blockchain_prefix(data_type), identifier)


def cache_type_for_prefix(prefix: str) -> str:
    """Map a key or prefix to the metrics label of its namespace."""
    if prefix.startswith(TRANSACTION_PREFIX):
        return DATA_TYPE_TRANSACTION
    if prefix.startswith(ACCOUNT_PREFIX):
        return DATA_TYPE_ACCOUNT
    if prefix.startswith(BLOCKCHAIN_PREFIX):
        return "blockchain"
    if prefix.startswith(API_PREFIX):
        return "api"
    return "prefix"
