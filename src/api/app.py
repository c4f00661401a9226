"""
FastAPI application factory.

* Registers every customer, provider, marketplace and admin router under
  ``/api/v1`` plus the ``/ws`` socket endpoint.
* Starts / stops the background dispatcher and the realtime relay via
  lifespan events.
* Applies rate limiting and the shared error envelope.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.errors import register_exception_handlers
from src.api.middleware import limiter
from src.api.routes import (
    admin,
    bookings,
    deliveries,
    dispatch_riders,
    emergency,
    moving,
    notifications,
    orders,
    places,
    providers,
    realtime,
    reviews,
    search,
    stores,
    subscriptions,
)
from src.config import settings
from src.infrastructure.redis_client import close_redis, get_redis
from src.services import realtime as _realtime
from src.workers import dispatcher as _dispatcher

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the dispatcher and socket relay on startup; stop on shutdown."""
    await _realtime.start_relay(await get_redis())
    await _dispatcher.start_dispatch_loop()
    yield
    await _dispatcher.stop_dispatch_loop()
    await _realtime.stop_relay()
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="TripSync Logistics API",
        description=(
            "Rides, taxis, deliveries, house moving and emergency dispatch "
            "over one provider lifecycle, with a store marketplace, "
            "community places, regional service zones and real-time "
            "tracking."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(app)

    # Provider routers first: their prefixes nest under /moving and /emergency
    for router in (
        providers.drivers,
        providers.taxi_drivers,
        providers.movers,
        providers.responders,
        providers.dispatch_riders,
        dispatch_riders.router,
        bookings.router,
        deliveries.router,
        moving.router,
        emergency.router,
        stores.router,
        orders.router,
        places.router,
        reviews.router,
        search.router,
        subscriptions.router,
        notifications.router,
        admin.router,
    ):
        app.include_router(router, prefix="/api/v1")
    app.include_router(realtime.router)

    return app
