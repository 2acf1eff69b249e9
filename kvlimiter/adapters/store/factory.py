"""Factory pattern for creating key-value store instances."""

from kvlimiter.adapters.store.base import AbstractKeyValueStore
from kvlimiter.adapters.store.in_memory import InMemoryKeyValueStore
from kvlimiter.adapters.store.redis_store import RedisKeyValueStore
from kvlimiter.core.config import StoreSettings, settings
from kvlimiter.core.errors import ValidationAppError


def create_store(store_settings: StoreSettings | None = None) -> AbstractKeyValueStore:
    """Instantiate the configured store backend.

    Reads configuration from kvlimiter.core.config.settings unless explicit
    settings are passed.

    Returns:
        AbstractKeyValueStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower().strip()

    if backend == "memory":
        return InMemoryKeyValueStore()

    if backend == "redis":
        if not cfg.url:
            raise ValidationAppError(
                code="store_missing_url",
                message="Redis backend requires STORE_URL environment variable",
            )
        return RedisKeyValueStore(cfg.url, socket_timeout=cfg.socket_timeout)

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: memory, redis",
        details={"backend": backend},
    )
