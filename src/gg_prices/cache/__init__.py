"""gg_prices.cache — Remembered prices and their persistence."""

from gg_prices.cache.backends import (
    CacheBackend,
    CacheMapping,
    JsonFileBackend,
    MemoryBackend,
    SqliteBackend,
    create_backend,
    decode_snapshot,
    encode_snapshot,
)
from gg_prices.cache.store import CacheStore

__all__ = [
    "CacheBackend",
    "CacheMapping",
    "CacheStore",
    "JsonFileBackend",
    "MemoryBackend",
    "SqliteBackend",
    "create_backend",
    "decode_snapshot",
    "encode_snapshot",
]
