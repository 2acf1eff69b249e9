"""Pydantic schemas for rate limit check responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LimitCheckResponse(BaseModel):
    """Decision returned by the limit check endpoint."""

    admitted: bool = Field(
        ..., description="Whether the units were consumed and the work may proceed."
    )
    wait_seconds: float | None = Field(
        default=None,
        description="Seconds to wait before retrying (only when not admitted and satisfiable).",
    )
    unsatisfiable: bool = Field(
        default=False,
        description="True when the cost exceeds the limit itself; waiting never helps.",
    )
    limit: float = Field(..., description="Maximum units per period.")
    period: float = Field(..., description="Period in seconds over which the limit applies.")


class LimitConfigResponse(BaseModel):
    """Active limiter configuration (no secrets)."""

    max_requests: float
    period: float
    locking: bool
    store: str
