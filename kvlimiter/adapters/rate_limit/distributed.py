"""Store-backed sliding-window rate limiter.

Notes:
- Shared: every process pointing at the same store enforces one limit.
- Stateless: the instance holds configuration only, so one limiter can be
  reused across threads.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

from kvlimiter.adapters.rate_limit.base import (
    UNSATISFIABLE,
    AbstractRateLimiter,
    RateLimitResult,
)
from kvlimiter.adapters.rate_limit.strategies import (
    BucketKeys,
    CasStrategy,
    LockingStrategy,
    UpdateStrategy,
)
from kvlimiter.adapters.store.base import AbstractKeyValueStore
from kvlimiter.core.config import LimiterSettings
from kvlimiter.core.errors import LimitAppError
from kvlimiter.core.fixed_point import RESOLUTION, encode
from kvlimiter.utils.key_builder import build_base_key, bucket_keys, hash_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DistributedRateLimiter(AbstractRateLimiter):
    """Rate limiter allowing ``max_requests`` per ``period`` seconds per key.

    The allowance refills continuously, so a caller that was told to wait N
    seconds is admitted after sleeping N seconds (absent other consumers).
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        key_prefix: str | None = "kvlimiter",
        max_requests: float = 5,
        period: float = 8,
        locking: bool = False,
        lock_timeout: float = 30,
        lock_ttl: int = 2,
        max_attempts: int = 100,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared key-value store.
            key_prefix: Namespace for this limiter's keys (may be empty).
            max_requests: Maximum units per period.
            period: Seconds over which max_requests is enforced.
            locking: Use an advisory lock instead of compare-and-swap.
            lock_timeout: Seconds allowed for lock acquisition or CAS retries.
            lock_ttl: Expiry of the advisory lock record, in seconds.
            max_attempts: Maximum lock/CAS attempts per contended update.
            clock: Time source returning UNIX time in seconds.
            sleep: Blocking sleep used for backoff and waiting.
            rng: Uniform [0, 1) source used to jitter backoff.

        Raises:
            ValueError: If any numeric option is out of range.
        """
        if max_requests * RESOLUTION < 1:
            raise ValueError(f"max_requests must be >= {1 / RESOLUTION}")
        if period * RESOLUTION < 1:
            raise ValueError(f"period must be >= {1 / RESOLUTION}")
        if lock_timeout <= 0:
            raise ValueError("lock_timeout must be > 0")
        if lock_ttl < 1:
            raise ValueError("lock_ttl must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self._key_prefix = key_prefix or ""
        self._max_requests = float(max_requests)
        self._period = float(period)
        self._locking = locking
        self._clock = clock
        self._sleep = sleep

        common = dict(
            max_requests=self._max_requests,
            period=self._period,
            lock_timeout=float(lock_timeout),
            max_attempts=max_attempts,
            clock=clock,
            sleep=sleep,
            rng=rng,
        )
        self._strategy: UpdateStrategy
        if locking:
            self._strategy = LockingStrategy(store, lock_ttl=lock_ttl, **common)
        else:
            self._strategy = CasStrategy(store, **common)

    @classmethod
    def from_settings(
        cls,
        store: AbstractKeyValueStore,
        limiter_settings: LimiterSettings,
        **overrides,
    ) -> "DistributedRateLimiter":
        """Build a limiter from ``LIMITER_*`` settings."""
        options = limiter_settings.model_dump()
        options.update(overrides)
        return cls(store, **options)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"DistributedRateLimiter(key_prefix={self._key_prefix!r}, "
            f"max_requests={self._max_requests}, period={self._period}, "
            f"locking={self._locking})"
        )

    @property
    def max_requests(self) -> float:
        return self._max_requests

    @property
    def period(self) -> float:
        return self._period

    @property
    def locking(self) -> bool:
        return self._locking

    def _bucket_keys(self, unique_key: str | None) -> BucketKeys:
        base = build_base_key(self._key_prefix, unique_key)
        allowance, timestamp, lock = bucket_keys(base)
        return BucketKeys(
            allowance=allowance,
            timestamp=timestamp,
            lock=lock,
            key_hash=hash_key(base),
        )

    def exceeded(self, unique_key: str | None = None, to_consume: float = 1) -> float:
        """Determine whether processing a request would exceed the limit.

        An admitted request is counted against the allowance.

        Args:
            unique_key: Identifier of the item being limited, combined with
                the key prefix.
            to_consume: Units to consume (a partial request or a batch).

        Returns:
            0.0 if the request may proceed (including when nothing is
            consumed), a positive number of seconds to wait before retrying,
            or ``UNSATISFIABLE`` if ``to_consume`` exceeds ``max_requests``.

        Raises:
            LockAppError: If a contended update cannot complete in time.
            ValidationAppError: If the prefix and unique key are both empty.
        """
        to_consume = float(to_consume)
        if to_consume <= 0:
            return 0.0
        if to_consume > self._max_requests:
            logger.info(
                "rate_limit.unsatisfiable",
                extra={"to_consume": to_consume, "max_requests": self._max_requests},
            )
            return UNSATISFIABLE

        keys = self._bucket_keys(unique_key)
        outcome = self._strategy.attempt_update(keys, encode(to_consume))
        if outcome.admitted:
            logger.debug(
                "rate_limit.admitted",
                extra={
                    "key_hash": keys.key_hash,
                    "mode": self._strategy.mode,
                    "to_consume": to_consume,
                },
            )
            return 0.0

        logger.info(
            "rate_limit.rejected",
            extra={
                "key_hash": keys.key_hash,
                "mode": self._strategy.mode,
                "to_consume": to_consume,
                "wait_s": outcome.wait,
            },
        )
        return outcome.wait

    def without_exceeding(
        self,
        unique_key: str | None,
        block: Callable[[], T],
        *,
        to_consume: float = 1,
        wait_timeout: float | None = None,
    ) -> T:
        """Run ``block`` once it fits within the limit, sleeping as needed.

        Args:
            unique_key: See ``exceeded``.
            block: Zero-argument callable to run once admitted.
            to_consume: See ``exceeded``.
            wait_timeout: Maximum seconds to spend waiting before giving up.

        Returns:
            The return value of ``block``.

        Raises:
            LimitAppError: If the request can never fit, or would not fit
                within ``wait_timeout`` seconds. ``block`` is not called.
            LockAppError: Propagated from ``exceeded``.
        """
        if wait_timeout is not None:
            wait_timeout = float(wait_timeout)

        started_at = self._clock()
        while True:
            wait = self.exceeded(unique_key, to_consume)
            if not wait:
                return block()

            if wait < 0:
                raise LimitAppError(
                    code="rate_limit_unsatisfiable",
                    message="Unable to yield without exceeding limit",
                    details={
                        "to_consume": float(to_consume),
                        "max_requests": self._max_requests,
                    },
                )

            waited = self._clock() - started_at
            if wait_timeout is not None and waited + wait > wait_timeout:
                raise LimitAppError(
                    code="rate_limit_wait_timeout",
                    message="Unable to yield without exceeding limit",
                    details={"wait_seconds": wait, "wait_timeout": wait_timeout},
                )
            self._sleep(wait)

    def check(self, unique_key: str | None, *, cost: float = 1) -> RateLimitResult:
        wait = self.exceeded(unique_key, cost)
        if not wait:
            return RateLimitResult(
                allowed=True,
                limit=self._max_requests,
                retry_after_seconds=None,
            )
        if wait < 0:
            return RateLimitResult(
                allowed=False,
                limit=self._max_requests,
                retry_after_seconds=None,
                unsatisfiable=True,
            )
        return RateLimitResult(
            allowed=False,
            limit=self._max_requests,
            retry_after_seconds=wait,
        )
