"""
FastAPI application factory.

* Registers routes for rides, driver presence and admin.
* Maps dispatch error kinds onto HTTP responses.
* Applies rate-limiting middleware.
* Releases the DB engine and Redis pool on shutdown.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ride_dispatch.api.errors import register_error_handlers
from ride_dispatch.api.middleware import limiter
from ride_dispatch.api.routes import admin, drivers, rides
from ride_dispatch.config import settings
from ride_dispatch.infrastructure import redis_client
from ride_dispatch.infrastructure.database import engine
from ride_dispatch.logging_setup import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Dispose shared connection pools on shutdown."""
    logger.info("Ride dispatch API starting (%s)", settings.environment)
    yield
    await engine.dispose()
    await redis_client.close_pool()
    logger.info("Ride dispatch API stopped")


def create_app() -> FastAPI:
    setup_logging(settings.log_level, settings.log_json, settings.environment)

    app = FastAPI(
        title="Ride Dispatch API",
        description=(
            "Ride lifecycle and driver dispatch: passengers request rides, "
            "online drivers pull pending rides and race to accept them, and "
            "the bound driver moves the ride through arrival, start and "
            "completion. Either party may rate a completed ride once."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_error_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
