"""
FastAPI application factory.

* Registers routes for quotes, rides and admin.
* Wires the document store, geocoder and fare calculator onto ``app.state``.
* Closes every live passenger session on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter, ride_error_handler
from src.api.routes import admin, rides
from src.api.sessions import SessionRegistry
from src.domain.exceptions import RideError
from src.domain.pricing import FareCalculator
from src.infrastructure.change_feed import RedisChangeFeed
from src.infrastructure.database import async_session_factory
from src.infrastructure.geocoding import GeocodingAdapter, GoogleMapsGeocoder
from src.infrastructure.redis_client import get_redis
from src.infrastructure.sql_store import SqlDocumentStore
from src.infrastructure.store import DocumentStore

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Dispose of every passenger session on shutdown."""
    yield
    await app.state.registry.close_all()


def _default_store() -> DocumentStore:
    return SqlDocumentStore(async_session_factory, RedisChangeFeed(get_redis()))


def create_app(
    store: Optional[DocumentStore] = None,
    geocoder: Optional[GeocodingAdapter] = None,
    fares: Optional[FareCalculator] = None,
) -> FastAPI:
    app = FastAPI(
        title="Ride Lifecycle API",
        description=(
            "Follows a passenger's trip from quote to settlement: ride "
            "requests, live driver tracking, hold-to-cancel and driver "
            "ratings on top of a real-time document store."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.store = store or _default_store()
    app.state.geocoder = geocoder or GoogleMapsGeocoder()
    app.state.fares = fares or FareCalculator()
    app.state.registry = SessionRegistry()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RideError, ride_error_handler)

    # Routers
    app.include_router(rides.quotes_router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
