"""Many threads sharing one store and one limiter."""

import threading

import pytest

from kvlimiter.adapters.rate_limit.distributed import DistributedRateLimiter
from kvlimiter.adapters.store.in_memory import InMemoryKeyValueStore

THREADS = 8
CALLS_PER_THREAD = 5
MAX_REQUESTS = 10


def _hammer(limiter: DistributedRateLimiter) -> int:
    admitted: list[int] = []
    lock = threading.Lock()
    barrier = threading.Barrier(THREADS)

    def _worker() -> None:
        barrier.wait()
        count = sum(1 for _ in range(CALLS_PER_THREAD) if not limiter.exceeded("shared"))
        with lock:
            admitted.append(count)

    threads = [threading.Thread(target=_worker) for _ in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return sum(admitted)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


def test_locking_mode_never_over_admits(store) -> None:
    # A 600s period refills far less than one request during the test.
    limiter = DistributedRateLimiter(
        store,
        max_requests=MAX_REQUESTS,
        period=600,
        locking=True,
        rng=lambda: 0.01,
    )

    assert _hammer(limiter) == MAX_REQUESTS


def test_cas_mode_over_admits_at_most_one_per_racing_writer(store) -> None:
    limiter = DistributedRateLimiter(
        store,
        max_requests=MAX_REQUESTS,
        period=600,
        rng=lambda: 0.01,
    )

    admitted = _hammer(limiter)
    assert MAX_REQUESTS <= admitted <= MAX_REQUESTS + THREADS
