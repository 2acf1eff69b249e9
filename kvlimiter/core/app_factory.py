from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from fastapi import FastAPI

from kvlimiter import __version__
from kvlimiter.api.routes import health_router, limits_router
from kvlimiter.core.config import settings
from kvlimiter.core.exception_handlers import setup_exception_handlers
from kvlimiter.core.logging import configure_logging
from kvlimiter.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="kvlimiter",
        description=(
            "Distributed sliding-window rate limiting over a shared key-value "
            "store. Check a key's allowance, or protect routes with the "
            "enforce_rate_limit dependency."
        ),
        version=__version__,
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(limits_router, prefix="/v1")
    app.include_router(health_router)

    return app
