"""Rate limiting dependency for FastAPI routes.

Wires the distributed limiter into the HTTP layer:
- One limiter per process, rebuilt when settings change (tests).
- Keyed by API key when present, else by client IP.
- Rejections become 429 with Retry-After; lock/store failures surface as 503
  through the global exception handlers.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from kvlimiter.adapters.rate_limit.base import AbstractRateLimiter
from kvlimiter.adapters.rate_limit.distributed import DistributedRateLimiter
from kvlimiter.adapters.store.base import AbstractKeyValueStore
from kvlimiter.adapters.store.factory import create_store
from kvlimiter.core.config import settings
from kvlimiter.utils.key_builder import hash_key

logger = logging.getLogger(__name__)


_store: AbstractKeyValueStore | None = None
_store_config: tuple | None = None
_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple | None = None


def get_store() -> AbstractKeyValueStore:
    """Return the process-wide store, rebuilt if its settings changed."""

    global _store, _store_config

    config = tuple(settings.store.model_dump().values())
    if _store is None or _store_config != config:
        _store = create_store(settings.store)
        _store_config = config
    return _store


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide rate limiter instance.

    The limiter itself holds no state; caching it only avoids rebuilding the
    store connection on every request.
    """

    global _limiter, _limiter_config

    store = get_store()
    config = (id(store), *settings.limiter.model_dump().values())
    if _limiter is None or _limiter_config != config:
        _limiter = DistributedRateLimiter.from_settings(store, settings.limiter)
        _limiter_config = config
    return _limiter


def _build_rate_limit_key(request: Request, x_api_key: str | None) -> str:
    if x_api_key:
        return f"api_key:{x_api_key}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


async def enforce_rate_limit(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing rate limits.

    When enabled, consumes ``APP_RATE_LIMIT_COST`` units from the requester's
    allowance. Over the limit, raises HTTP 429.

    Raises:
        HTTPException: 429 Too Many Requests when the limit is exceeded.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_rate_limiter()
    key = _build_rate_limit_key(request, x_api_key)
    key_type = "api_key" if x_api_key else "ip"

    result = limiter.check(key, cost=settings.app.rate_limit_cost)
    if result.allowed:
        return

    retry_after = math.ceil(result.retry_after_seconds or 0)
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": key_type,
            "key_hash": hash_key(key),
            "limit": result.limit,
            "retry_after_s": retry_after,
            "unsatisfiable": result.unsatisfiable,
        },
    )

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        if not result.unsatisfiable:
            headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = f"{result.limit:g}"
        headers["X-RateLimit-Period"] = f"{settings.limiter.period:g}"

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )
