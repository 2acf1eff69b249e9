from __future__ import annotations

from fastapi import APIRouter

from kvlimiter.core.rate_limit import get_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Reports the configured store backend and whether it answers a ping, so a
    load balancer can tell a dead Redis from a dead process.

    Returns:
        dict: ``status`` ("ok" or "degraded") and ``store`` backend name.
    """

    store = get_store()
    status = "ok" if store.ping() else "degraded"
    return {"status": status, "store": store.name}
