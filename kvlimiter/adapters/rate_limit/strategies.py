"""Update protocols coordinating a bucket through the shared store.

Every strategy tries the fast path (first observer of a fresh bucket
creates it with ``add``). Locking mode takes an advisory lock first and runs
the fast path under it; lock-free mode tries it unguarded and falls back to
an optimistic compare-and-swap loop. Lock waits and CAS retries are bounded
by ``lock_timeout`` seconds of wall-clock time and ``max_attempts`` tries.

Lock-free mode tolerates one known race: a writer can read the allowance
after another writer published its timestamp but before it adjusted the
allowance. The stale read can admit up to one extra request per racing
writer. Locking mode serializes every update and does not have it.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from kvlimiter.adapters.store.base import AbstractKeyValueStore
from kvlimiter.core.allowance import AllowanceDecision, compute_allowance
from kvlimiter.core.errors import LockAppError, StoreAppError
from kvlimiter.core.fixed_point import ceil_seconds, decode, encode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BucketKeys:
    """Store keys of one bucket, plus a log-safe hash of its base key."""

    allowance: str
    timestamp: str
    lock: str
    key_hash: str


@dataclass(frozen=True)
class UpdateOutcome:
    """Decision of one protocol run; ``wait`` is in seconds."""

    admitted: bool
    wait: float = 0.0


ADMITTED = UpdateOutcome(admitted=True)


class UpdateStrategy(ABC):
    """Base protocol: fast path, then a contended update."""

    mode = "abstract"

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        max_requests: float,
        period: float,
        lock_timeout: float,
        max_attempts: int,
        clock: Callable[[], float],
        sleep: Callable[[float], None],
        rng: Callable[[], float],
    ) -> None:
        self._store = store
        self._max_units = encode(max_requests)
        self._period_units = encode(period)
        self._ttl = ceil_seconds(period)
        self._lock_timeout = lock_timeout
        self._max_attempts = max_attempts
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

    def attempt_update(self, keys: BucketKeys, to_consume: int) -> UpdateOutcome:
        """Run the protocol for ``to_consume`` units against one bucket.

        Raises:
            LockAppError: If a contended update cannot complete in its bound.
        """
        if self._fast_path(keys, to_consume):
            return ADMITTED
        return self._contended_update(keys, to_consume)

    @abstractmethod
    def _contended_update(self, keys: BucketKeys, to_consume: int) -> UpdateOutcome:
        raise NotImplementedError

    def _fast_path(self, keys: BucketKeys, to_consume: int) -> bool:
        now = encode(self._clock())
        if not self._store.add(keys.allowance, self._max_units - to_consume, self._ttl):
            return False
        self._store.set(keys.timestamp, now, self._ttl)
        logger.debug("rate_limit.fast_path", extra={"key_hash": keys.key_hash})
        return True

    def _read_and_decide(
        self, keys: BucketKeys, to_consume: int
    ) -> tuple[int | None, int | None, AllowanceDecision]:
        values = self._store.get_multi([keys.allowance, keys.timestamp])
        previous_allowance = values.get(keys.allowance)
        previous_timestamp = values.get(keys.timestamp)
        decision = compute_allowance(
            previous_allowance,
            previous_timestamp,
            encode(self._clock()),
            to_consume,
            max_requests=self._max_units,
            period=self._period_units,
        )
        return previous_allowance, previous_timestamp, decision

    def _penalty_ttl(self, decision: AllowanceDecision) -> int:
        return self._ttl + ceil_seconds(decode(decision.wait))

    def _backoff(self, keys: BucketKeys, attempt: int, started_at: float) -> None:
        """Sleep a randomized, growing delay or give up.

        Raises:
            LockAppError: When the next delay would cross ``lock_timeout`` or
                ``max_attempts`` tries have been made.
        """
        delay = self._rng() * math.sqrt(attempt / math.e)
        elapsed = self._clock() - started_at
        if attempt >= self._max_attempts or elapsed + delay > self._lock_timeout:
            logger.warning(
                "rate_limit.lock_failed",
                extra={
                    "key_hash": keys.key_hash,
                    "mode": self.mode,
                    "attempts": attempt,
                    "elapsed_s": round(elapsed, 3),
                },
            )
            raise LockAppError(
                code="rate_limit_lock_failed",
                message="Unable to lock key for update",
                details={
                    "key_hash": keys.key_hash,
                    "attempts": attempt,
                    "elapsed_seconds": elapsed,
                    "lock_timeout": self._lock_timeout,
                },
            )
        self._sleep(delay)


class LockingStrategy(UpdateStrategy):
    """Read-modify-write guarded by an advisory lock record.

    The lock carries its own TTL, so a holder that dies only blocks the
    bucket for ``lock_ttl`` seconds.
    """

    mode = "locking"

    def __init__(self, store: AbstractKeyValueStore, *, lock_ttl: int, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self._lock_ttl = lock_ttl

    def attempt_update(self, keys: BucketKeys, to_consume: int) -> UpdateOutcome:
        # An unguarded add could create the bucket between a holder's read
        # and its write, and the holder's set would erase that consumption.
        self._acquire_lock(keys)
        try:
            return super().attempt_update(keys, to_consume)
        finally:
            self._release_lock(keys)

    def _contended_update(self, keys: BucketKeys, to_consume: int) -> UpdateOutcome:
        _, _, decision = self._read_and_decide(keys, to_consume)
        if decision.admitted:
            self._store.set(keys.allowance, decision.allowance, self._ttl)
            self._store.set(keys.timestamp, decision.timestamp, self._ttl)
            return ADMITTED

        # Rebase to an equivalent state so the bucket outlives the penalty.
        ttl = self._penalty_ttl(decision)
        self._store.set(keys.allowance, decision.allowance, ttl)
        self._store.set(keys.timestamp, decision.timestamp, ttl)
        return UpdateOutcome(admitted=False, wait=decode(decision.wait))

    def _acquire_lock(self, keys: BucketKeys) -> None:
        started_at = self._clock()
        attempt = 1
        while not self._store.add(keys.lock, 1, self._lock_ttl):
            self._backoff(keys, attempt, started_at)
            attempt += 1

    def _release_lock(self, keys: BucketKeys) -> None:
        try:
            self._store.delete(keys.lock)
        except StoreAppError:
            # Lock expires on its own after lock_ttl.
            logger.warning("rate_limit.lock_release_failed", extra={"key_hash": keys.key_hash})


class CasStrategy(UpdateStrategy):
    """Optimistic update: publish the timestamp with CAS, then adjust the allowance."""

    mode = "cas"

    def _contended_update(self, keys: BucketKeys, to_consume: int) -> UpdateOutcome:
        started_at = self._clock()
        attempt = 1
        while True:
            previous_allowance, previous_timestamp, decision = self._read_and_decide(
                keys, to_consume
            )
            if not decision.admitted:
                ttl = self._penalty_ttl(decision)
                self._store.touch(keys.allowance, ttl)
                self._store.touch(keys.timestamp, ttl)
                return UpdateOutcome(admitted=False, wait=decode(decision.wait))

            if self._publish_timestamp(keys, previous_timestamp, decision.timestamp):
                self._apply_allowance(keys, previous_allowance, decision.allowance)
                return ADMITTED

            logger.debug(
                "rate_limit.cas_retry",
                extra={"key_hash": keys.key_hash, "mode": self.mode, "attempts": attempt},
            )
            self._backoff(keys, attempt, started_at)
            attempt += 1

    def _publish_timestamp(
        self, keys: BucketKeys, previous_timestamp: int | None, new_timestamp: int
    ) -> bool:
        if previous_timestamp is None:
            return self._store.add(keys.timestamp, new_timestamp, self._ttl)

        def _swap(current: int) -> int | None:
            return new_timestamp if current == previous_timestamp else None

        return self._store.cas(keys.timestamp, _swap, self._ttl)

    def _apply_allowance(
        self, keys: BucketKeys, previous_allowance: int | None, new_allowance: int
    ) -> None:
        if previous_allowance is None:
            self._store.set(keys.allowance, new_allowance, self._ttl)
            return

        delta = new_allowance - previous_allowance
        if delta >= 0:
            result = self._store.incr(keys.allowance, delta)
        else:
            result = self._store.decr(keys.allowance, -delta)

        if result is None:
            # Expired between the read and the write.
            self._store.set(keys.allowance, new_allowance, self._ttl)
        elif result > self._max_units:
            self._store.set(keys.allowance, self._max_units, self._ttl)
        else:
            self._store.touch(keys.allowance, self._ttl)
