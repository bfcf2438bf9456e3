"""
FastAPI application factory.

* Registers routes for bookings, drivers, fares, scheduled rides, demand
  and admin.
* Maps the domain error taxonomy onto HTTP status codes.
* Starts / stops the background maintenance worker via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, bookings, demand, drivers, fares, scheduled
from src.domain.errors import (
    DomainError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    StaleDataError,
    ValidationError,
)
from src.infrastructure.redis_client import close_redis
from src.workers import sweeper as _sweeper

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_STATUS_FOR = {
    ValidationError: 422,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    StaleDataError: 409,
    PersistenceError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the maintenance worker on startup; stop on shutdown."""
    await _sweeper.start_sweeper()
    yield
    await _sweeper.stop_sweeper()
    await close_redis()


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status = _STATUS_FOR.get(type(exc), 400)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Tricycle Dispatch API",
        description=(
            "Books tricycle rides, dispatches the nearest fresh driver, "
            "prices trips per zone tariff and scores driver safety from "
            "trip, incident and complaint history."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(DomainError, _domain_error_handler)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(fares.router, prefix="/api/v1")
    app.include_router(scheduled.router, prefix="/api/v1")
    app.include_router(demand.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
