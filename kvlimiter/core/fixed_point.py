"""Fixed-point conversion between caller floats and store integers.

Store increment/decrement primitives only handle integers, so every quantity
crossing the store boundary is scaled by ``RESOLUTION`` and floored.
"""

from __future__ import annotations

import math
from decimal import ROUND_FLOOR, Decimal

PRECISION = 3
RESOLUTION = 10**PRECISION


def encode(value: float) -> int:
    """Convert seconds or token counts into integer units.

    Works from the shortest decimal repr of the float so ``1001.6`` becomes
    ``1001600`` rather than ``1001599``.

    Args:
        value: Non-negative float (seconds or tokens).

    Returns:
        Value in units of ``1 / RESOLUTION``, floored.
    """
    scaled = Decimal(repr(float(value))) * RESOLUTION
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def decode(units: int) -> float:
    """Convert integer units back into a float."""
    return units / RESOLUTION


def ceil_seconds(value: float) -> int:
    """Round a duration up to whole seconds, as store TTLs require."""
    return max(0, math.ceil(value))
