"""
FastAPI Application Entry Point.

This is the main application file for the Flora courier tracking backend.
Process-wide collaborators (route cache, geocoder, geocoding rate limiter)
are built here once and shared through ``app.state``.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from flora_backend.app.core.config import settings
from flora_backend.app.api.v1.router import router as api_v1_router
from flora_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from flora_backend.app.core.redis_client import redis_client, ping_redis
from flora_backend.app.core.reliability import CircuitBreaker, FixedDelayRateLimiter
from flora_backend.app.db.session import engine, Base
from flora_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from flora_backend.app.services.cache import build_route_cache
from flora_backend.app.services.geocoding import NominatimGeocoder

# Import models to ensure they are registered with Base
from flora_backend.app.models.organization import Organization
from flora_backend.app.models.user import User
from flora_backend.app.models.order import Order
from flora_backend.app.models.courier_location import CourierLocation, CourierLocationLatest

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Closes the geocoder HTTP client on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await app.state.geocoder.aclose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Courier tracking and delivery route optimization",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Composition root: one instance of each for the whole process
app.state.route_cache = build_route_cache(
    settings.route_cache_backend,
    settings.route_cache_ttl_seconds,
    redis=redis_client,
)
app.state.geocoder = NominatimGeocoder(
    base_url=settings.geocoder_base_url,
    user_agent=settings.geocoder_user_agent,
    timeout=settings.geocoder_timeout_seconds,
    circuit_breaker=CircuitBreaker(
        failure_threshold=settings.geocoder_failure_threshold,
        reset_timeout=settings.geocoder_reset_timeout_seconds,
    ),
)
app.state.geocode_limiter = FixedDelayRateLimiter(settings.geocoder_min_interval_seconds)

# Every error leaves as {error_code, message, details}
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe; also pings Redis when routes are cached there."""
    health = {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "route_cache": settings.route_cache_backend,
    }
    if settings.route_cache_backend == "redis":
        health["redis"] = await ping_redis()
    return health


app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Flora Courier Tracking API",
        "docs": "/docs",
        "health": "/health",
    }
