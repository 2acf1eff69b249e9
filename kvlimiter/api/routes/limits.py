from fastapi import APIRouter, Depends, Query

from kvlimiter.adapters.rate_limit.base import AbstractRateLimiter
from kvlimiter.core.config import settings
from kvlimiter.core.rate_limit import enforce_rate_limit, get_rate_limiter
from kvlimiter.schemas.limits import LimitCheckResponse, LimitConfigResponse

router = APIRouter(tags=["Limits"])


@router.post("/limits/{unique_key}/check", response_model=LimitCheckResponse)
def check_limit(
    unique_key: str,
    cost: float = Query(1.0, description="Units to consume from the allowance."),
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> LimitCheckResponse:
    """Consume ``cost`` units for ``unique_key`` and report the decision.

    A rejection is a normal 200 response here: the caller asked for a
    decision, not for protected work. Lock and store failures are mapped to
    503 by the global exception handlers.

    Args:
        unique_key: Identifier of the item being limited.
        cost: Units to consume (zero or negative always admits).
        limiter: Injected process-wide limiter.

    Returns:
        LimitCheckResponse: Admission decision and required wait.
    """
    result = limiter.check(unique_key, cost=cost)
    return LimitCheckResponse(
        admitted=result.allowed,
        wait_seconds=result.retry_after_seconds,
        unsatisfiable=result.unsatisfiable,
        limit=result.limit,
        period=settings.limiter.period,
    )


@router.get(
    "/limits/config",
    response_model=LimitConfigResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def limit_config() -> LimitConfigResponse:
    """Describe the active quota. Itself rate limited per caller."""
    return LimitConfigResponse(
        max_requests=settings.limiter.max_requests,
        period=settings.limiter.period,
        locking=settings.limiter.locking,
        store=settings.store.backend,
    )
