"""Key-value store adapters backing the distributed limiter."""

from kvlimiter.adapters.store.base import AbstractKeyValueStore
from kvlimiter.adapters.store.factory import create_store
from kvlimiter.adapters.store.in_memory import InMemoryKeyValueStore
from kvlimiter.adapters.store.redis_store import RedisKeyValueStore

__all__ = [
    "AbstractKeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "create_store",
]
