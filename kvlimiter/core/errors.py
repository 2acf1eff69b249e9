"""Application-level exception types.

A rate-limit rejection is a normal return value, not an error. The types here
cover the failures a caller must be able to tell apart from a rejection:
contended updates that could not complete, blocking waits that gave up, bad
input and backend outages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    attempts: int
    elapsed_seconds: float
    lock_timeout: float
    wait_seconds: float
    wait_timeout: float
    to_consume: float
    max_requests: float
    backend: str
    key_hash: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class LockAppError(AppError):
    """Raised when a contended update cannot complete within its bound."""


class LimitAppError(AppError):
    """Raised when a blocking call cannot proceed without exceeding the limit."""


class StoreAppError(AppError):
    """Raised when the backing key-value store fails."""
