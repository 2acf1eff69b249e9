"""Key-value store interface.

The limiter depends on this abstraction (not a concrete client) so any store
offering per-key atomic primitives and TTL expiry can back it. No cross-key
atomicity is assumed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

CasFunction = Callable[[int], int | None]


class AbstractKeyValueStore(ABC):
    """Interface for integer-valued stores with TTL expiry.

    TTLs are whole seconds; 0 means the record never expires.
    """

    name: str = "abstract"

    @abstractmethod
    def add(self, key: str, value: int, ttl: int) -> bool:
        """Write ``value`` only if ``key`` is absent.

        Returns:
            True if the value was written.
        """
        raise NotImplementedError

    @abstractmethod
    def get_multi(self, keys: Iterable[str]) -> dict[str, int]:
        """Read several keys. Absent or expired keys are omitted."""
        raise NotImplementedError

    @abstractmethod
    def cas(self, key: str, fn: CasFunction, ttl: int) -> bool:
        """Compare-and-swap ``key`` through ``fn``.

        ``fn`` receives the current value and returns the replacement, or
        None to abort without writing.

        Returns:
            False if the key is absent, ``fn`` aborted, or another writer
            changed the key between the read and the write.
        """
        raise NotImplementedError

    @abstractmethod
    def incr(self, key: str, delta: int) -> int | None:
        """Atomically add ``delta``; returns the new value or None if absent."""
        raise NotImplementedError

    @abstractmethod
    def decr(self, key: str, delta: int) -> int | None:
        """Atomically subtract ``delta`` flooring at 0; None if absent."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: int, ttl: int) -> None:
        """Write ``value`` unconditionally."""
        raise NotImplementedError

    @abstractmethod
    def touch(self, key: str, ttl: int) -> bool:
        """Reset the expiry of ``key``; False if absent."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; False if it was absent."""
        raise NotImplementedError

    def ping(self) -> bool:
        """Report whether the store is reachable."""
        return True
