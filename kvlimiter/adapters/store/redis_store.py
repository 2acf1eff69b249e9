"""Redis-backed key-value store.

Maps the limiter's primitives onto Redis commands:
- add -> SET NX EX
- get_multi -> MGET
- cas -> WATCH + MULTI/EXEC optimistic transaction
- incr / decr -> INCRBY in a script (missing keys stay missing, floor at 0)
- touch -> EXPIRE
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

import redis

from kvlimiter.adapters.store.base import AbstractKeyValueStore, CasFunction
from kvlimiter.core.errors import StoreAppError

logger = logging.getLogger(__name__)

# Runs atomically server-side, so concurrent adjustments never conflict.
# INCRBY keeps the key's TTL; returns nil when the key does not exist.
_ADJUST_SCRIPT = """
if redis.call("EXISTS", KEYS[1]) == 0 then
    return false
end
local value = redis.call("INCRBY", KEYS[1], ARGV[1])
if value < 0 then
    redis.call("SET", KEYS[1], 0, "KEEPTTL")
    value = 0
end
return value
"""


def _ttl_or_none(ttl: int) -> int | None:
    return int(ttl) if ttl and ttl > 0 else None


class RedisKeyValueStore(AbstractKeyValueStore):
    """Store adapter over a ``redis.Redis`` client."""

    name = "redis"

    def __init__(
        self,
        url: str | None = None,
        *,
        client: Any | None = None,
        socket_timeout: float | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            url: Redis connection URL, used when no client is given.
            client: Pre-built client (shared pools, tests).
            socket_timeout: Socket timeout in seconds for URL-built clients.

        Raises:
            ValueError: If neither url nor client is provided.
        """
        if client is None and not url:
            raise ValueError("url or client is required")
        # Connection is lazy; this does not hit the network until first command.
        self._client = client or redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        self._adjust_script = self._client.register_script(_ADJUST_SCRIPT)

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except redis.WatchError:
            raise
        except redis.RedisError as exc:
            logger.error(
                "store.error",
                extra={
                    "backend": self.name,
                    "operation": operation,
                    "error_type": type(exc).__name__,
                },
            )
            raise StoreAppError(
                code="store_unavailable",
                message=f"Redis {operation} failed",
                details={"backend": self.name, "hint": str(exc)},
            ) from exc

    def add(self, key: str, value: int, ttl: int) -> bool:
        result = self._call(
            "add",
            lambda: self._client.set(key, int(value), nx=True, ex=_ttl_or_none(ttl)),
        )
        return bool(result)

    def get_multi(self, keys: Iterable[str]) -> dict[str, int]:
        key_list = list(keys)
        if not key_list:
            return {}
        values = self._call("get_multi", lambda: self._client.mget(key_list))
        return {k: int(v) for k, v in zip(key_list, values) if v is not None}

    def cas(self, key: str, fn: CasFunction, ttl: int) -> bool:
        def _attempt() -> bool:
            with self._client.pipeline() as pipe:
                pipe.watch(key)
                raw = pipe.get(key)
                if raw is None:
                    return False
                new_value = fn(int(raw))
                if new_value is None:
                    return False
                pipe.multi()
                pipe.set(key, int(new_value), ex=_ttl_or_none(ttl))
                pipe.execute()
                return True

        try:
            return self._call("cas", _attempt)
        except redis.WatchError:
            logger.debug("store.cas_conflict", extra={"backend": self.name})
            return False

    def _adjust(self, operation: str, key: str, delta: int) -> int | None:
        result = self._call(
            operation, lambda: self._adjust_script(keys=[key], args=[int(delta)])
        )
        return None if result is None else int(result)

    def incr(self, key: str, delta: int) -> int | None:
        return self._adjust("incr", key, int(delta))

    def decr(self, key: str, delta: int) -> int | None:
        return self._adjust("decr", key, -int(delta))

    def set(self, key: str, value: int, ttl: int) -> None:
        self._call("set", lambda: self._client.set(key, int(value), ex=_ttl_or_none(ttl)))

    def touch(self, key: str, ttl: int) -> bool:
        if _ttl_or_none(ttl) is None:
            self._call("touch", lambda: self._client.persist(key))
            return bool(self._call("touch", lambda: self._client.exists(key)))
        return bool(self._call("touch", lambda: self._client.expire(key, int(ttl))))

    def delete(self, key: str) -> bool:
        return bool(self._call("delete", lambda: self._client.delete(key)))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
