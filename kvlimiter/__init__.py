"""Distributed sliding-window rate limiting over a shared key-value store."""

from kvlimiter.adapters.rate_limit import (
    UNSATISFIABLE,
    AbstractRateLimiter,
    DistributedRateLimiter,
    RateLimitResult,
)
from kvlimiter.core.errors import (
    AppError,
    LimitAppError,
    LockAppError,
    StoreAppError,
    ValidationAppError,
)

__version__ = "0.1.0"

__all__ = [
    "UNSATISFIABLE",
    "AbstractRateLimiter",
    "AppError",
    "DistributedRateLimiter",
    "LimitAppError",
    "LockAppError",
    "RateLimitResult",
    "StoreAppError",
    "ValidationAppError",
]
