import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI

from . import models
from .database import engine
from .errors import BookingError
from .exception_handlers import booking_error_handler
from .locks import ListingLocks
from .routers import booking_router, listing_router

import redis.asyncio as redis
from fastapi_limiter import FastAPILimiter
from .config import settings

# Setup logger
logger = logging.getLogger("stayfinder")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    logger.info("Booking service starting up...")

    # Creates 'listings' and 'bookings' if they don't exist
    models.Base.metadata.create_all(bind=engine)

    # Shared by every request of this process; see ListingLocks
    app.state.listing_locks = ListingLocks()

    redis_client = None
    if settings.RATE_LIMIT_ENABLED:
        try:
            redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8")
            await FastAPILimiter.init(redis_client)
            logger.info("FastAPILimiter initialized with Redis.")
        except Exception as e:
            logger.error(f"Failed to initialize FastAPILimiter, requests will not be rate limited: {e}")
            FastAPILimiter.redis = None
            if redis_client is not None:
                await redis_client.aclose()
                redis_client = None
    else:
        logger.info("Rate limiting disabled.")
    app.state.redis = redis_client

    yield  # The application is now running

    # --- Code to run on shutdown ---
    logger.info("Booking service shutting down...")
    if redis_client is not None:
        FastAPILimiter.redis = None
        await redis_client.aclose()
    engine.dispose()


# Create the FastAPI app instance, passing the lifespan manager
app = FastAPI(
    title="StayFinder Booking API",
    description="Listings, date-range bookings and two-party cancellation.",
    version="1.0.0",
    lifespan=lifespan
)

app.add_exception_handler(BookingError, booking_error_handler)

app.include_router(listing_router.router)
app.include_router(booking_router.router)


@app.get("/")
def read_root():
    return {"message": "Welcome to the StayFinder Booking Service"}
