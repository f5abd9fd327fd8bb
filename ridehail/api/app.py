"""
FastAPI application factory.

* Registers routes for trips, route changes, panic alerts, notifications,
  devices, drivers, admin and the realtime websocket.
* Starts / stops the push redelivery sweeper via lifespan events.
* Renders every ``DomainError`` as ``{"code", "detail"}`` with its status.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridehail.api.middleware import limiter
from ridehail.api.routes import (
    admin,
    devices,
    drivers,
    notifications,
    panic,
    realtime,
    route_changes,
    trips,
)
from ridehail.domain.errors import DomainError
from ridehail.infrastructure.database import dispose_engine
from ridehail.infrastructure.redis_client import close_redis
from ridehail.services.container import Services, build_services
from ridehail.workers import push_retry as _push_retry

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the push sweeper on startup; stop it and release pools on shutdown."""
    services: Services = app.state.services
    await _push_retry.start_push_retry_loop(services.dispatcher, services.store)
    yield
    await _push_retry.stop_push_retry_loop()
    await close_redis()
    await dispose_engine()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "detail": exc.message},
    )


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="Ride-Hailing Trip & Notification API",
        description=(
            "Trip lifecycle, route changes and panic alerts with durable, "
            "dual-channel (websocket + push) notification fan-out."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services or build_services()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    for module in (trips, route_changes, panic, notifications, devices, drivers, admin, realtime):
        app.include_router(module.router, prefix="/api/v1")

    return app
