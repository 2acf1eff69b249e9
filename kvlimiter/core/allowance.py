"""Sliding-window allowance model.

Pure functions over fixed-point integers (see ``kvlimiter.core.fixed_point``).
The quota refills linearly: ``max_requests`` tokens over ``period``. Nothing
here touches the store, so the math can be tested on its own.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AllowanceDecision:
    """Outcome of applying one request to a bucket.

    Attributes:
        admitted: Whether ``to_consume`` fits in the projected allowance.
        allowance: New allowance when admitted, else the projected allowance.
        timestamp: Timestamp to persist (never earlier than the one read).
        projected: Allowance after replenishment, before consumption.
        elapsed: Units of time since the previous update (never negative).
        wait: Units of time to wait before retrying (0 when admitted).
    """

    admitted: bool
    allowance: int
    timestamp: int
    projected: int
    elapsed: int
    wait: int


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def compute_allowance(
    previous_allowance: int | None,
    previous_timestamp: int | None,
    current_timestamp: int,
    to_consume: int,
    *,
    max_requests: int,
    period: int,
) -> AllowanceDecision:
    """Project the allowance to ``current_timestamp`` and try to consume.

    Missing state behaves as a fresh bucket. A previous timestamp in the
    future (clock skew or a lost update) counts as zero elapsed time.

    Args:
        previous_allowance: Stored allowance, or None when absent.
        previous_timestamp: Stored timestamp, or None when absent.
        current_timestamp: Caller's clock reading.
        to_consume: Units requested.
        max_requests: Bucket capacity in units.
        period: Refill period in units.

    Returns:
        AllowanceDecision describing the new state or the required wait.
    """
    if previous_allowance is None:
        previous_allowance = max_requests
    if previous_timestamp is None:
        previous_timestamp = current_timestamp

    previous_allowance = min(max(previous_allowance, 0), max_requests)
    elapsed = max(0, current_timestamp - previous_timestamp)

    delta = elapsed * max_requests // period
    projected = previous_allowance + delta
    if projected > max_requests:
        projected = max_requests
        delta = max_requests - previous_allowance

    timestamp = max(previous_timestamp, current_timestamp)

    if to_consume > projected:
        wait = _ceil_div((to_consume - projected) * period, max_requests)
        return AllowanceDecision(
            admitted=False,
            allowance=projected,
            timestamp=timestamp,
            projected=projected,
            elapsed=elapsed,
            wait=wait,
        )

    return AllowanceDecision(
        admitted=True,
        allowance=previous_allowance + delta - to_consume,
        timestamp=timestamp,
        projected=projected,
        elapsed=elapsed,
        wait=0,
    )
