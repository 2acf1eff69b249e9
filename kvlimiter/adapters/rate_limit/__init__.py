"""Rate limiting adapters.

The distributed limiter keeps all of its state in a shared key-value store,
so any number of processes pointing at the same store enforce one limit.
"""

from kvlimiter.adapters.rate_limit.base import (
    UNSATISFIABLE,
    AbstractRateLimiter,
    RateLimitResult,
)
from kvlimiter.adapters.rate_limit.distributed import DistributedRateLimiter

__all__ = [
    "UNSATISFIABLE",
    "AbstractRateLimiter",
    "DistributedRateLimiter",
    "RateLimitResult",
]
