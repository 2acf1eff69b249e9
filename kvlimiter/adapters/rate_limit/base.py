"""Rate limiter interfaces.

Callers (the HTTP layer included) depend on this abstraction rather than the
concrete store-backed implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

# Returned by ``exceeded`` when ``to_consume`` exceeds the quota itself.
UNSATISFIABLE = -1.0


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per period.
        retry_after_seconds: Seconds to wait when blocked (None when allowed
            or when no wait can ever help).
        unsatisfiable: True when the cost exceeds the limit itself.
    """

    allowed: bool
    limit: float
    retry_after_seconds: float | None
    unsatisfiable: bool = False


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def exceeded(self, unique_key: str | None = None, to_consume: float = 1) -> float:
        """Determine whether processing a request would exceed the limit.

        Args:
            unique_key: Identifier of the item being limited.
            to_consume: Units to consume from the allowance.

        Returns:
            0.0 when the request may proceed (it has been counted), a positive
            number of seconds to wait, or ``UNSATISFIABLE``.
        """
        raise NotImplementedError

    @abstractmethod
    def without_exceeding(
        self,
        unique_key: str | None,
        block: Callable[[], T],
        *,
        to_consume: float = 1,
        wait_timeout: float | None = None,
    ) -> T:
        """Wait until the request fits the limit, then run ``block``."""
        raise NotImplementedError

    @abstractmethod
    def check(self, unique_key: str | None, *, cost: float = 1) -> RateLimitResult:
        """Consume ``cost`` units and describe the decision."""
        raise NotImplementedError
