"""In-memory TTL key-value store.

Notes:
- Per-process only: limiters in separate processes do not share it.
- Thread-safe: every primitive runs under one lock, which gives the same
  per-key atomicity a networked store offers.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from kvlimiter.adapters.store.base import AbstractKeyValueStore, CasFunction

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: int
    expires_at: float | None
    version: int


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dictionary-backed store with lazy expiry and a periodic sweep.

    Expired entries are dropped when read, and writes sweep the whole dict at
    most once per ``sweep_interval`` seconds so idle buckets do not pile up.

    Attributes:
        clock: Time source returning UNIX time in seconds.
        sweep_interval: Minimum seconds between full sweeps (0 sweeps on
            every write).
    """

    name = "memory"

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._version = 0
        self._evictions = 0
        self._next_sweep_at = clock() + sweep_interval

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryKeyValueStore(size={len(self._entries)})"

    def _expires_at(self, ttl: int) -> float | None:
        return self._clock() + ttl if ttl > 0 else None

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and now >= entry.expires_at

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        if now < self._next_sweep_at:
            return
        self._next_sweep_at = now + self._sweep_interval
        expired = [k for k, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)

    def _live_entry_locked(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            self._evictions += 1
            return None
        return entry

    def _write_locked(self, key: str, value: int, ttl: int) -> None:
        self._evict_expired_locked()
        self._entries[key] = _Entry(
            value=int(value),
            expires_at=self._expires_at(ttl),
            version=self._next_version(),
        )

    def add(self, key: str, value: int, ttl: int) -> bool:
        with self._lock:
            if self._live_entry_locked(key) is not None:
                return False
            self._write_locked(key, value, ttl)
            return True

    def get_multi(self, keys: Iterable[str]) -> dict[str, int]:
        with self._lock:
            found: dict[str, int] = {}
            for key in keys:
                entry = self._live_entry_locked(key)
                if entry is not None:
                    found[key] = entry.value
            return found

    def cas(self, key: str, fn: CasFunction, ttl: int) -> bool:
        # Read and write happen in separate critical sections so ``fn`` runs
        # unlocked, like a client round-trip; the version check detects races.
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return False
            observed_version = entry.version
            observed_value = entry.value

        new_value = fn(observed_value)
        if new_value is None:
            return False

        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None or entry.version != observed_version:
                logger.debug("store.cas_conflict", extra={"backend": self.name})
                return False
            self._write_locked(key, new_value, ttl)
            return True

    def incr(self, key: str, delta: int) -> int | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return None
            entry.value += int(delta)
            entry.version = self._next_version()
            return entry.value

    def decr(self, key: str, delta: int) -> int | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return None
            entry.value = max(0, entry.value - int(delta))
            entry.version = self._next_version()
            return entry.value

    def set(self, key: str, value: int, ttl: int) -> None:
        with self._lock:
            self._write_locked(key, value, ttl)

    def touch(self, key: str, ttl: int) -> bool:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return False
            entry.expires_at = self._expires_at(ttl)
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def ttl(self, key: str) -> float | None:
        """Return seconds until ``key`` expires, or None if absent/permanent."""
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - self._clock()

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()
            self._evictions = 0

    def stats(self) -> dict[str, int]:
        """Return entry and eviction counts (expired entries not yet swept included)."""
        with self._lock:
            return {"entries": len(self._entries), "evictions": self._evictions}
