"""
FastAPI dependencies.

Authentication (JWT) and per-request construction of the tracking and
routing services. Long-lived collaborators (route cache, geocoder, rate
limiter) are created once in ``main.py`` and read from ``app.state``.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from flora_backend.app.core.config import settings
from flora_backend.app.core.jwt import decode_access_token
from flora_backend.app.db.session import get_db
from flora_backend.app.models.user import User
from flora_backend.app.services.cache import RouteCache
from flora_backend.app.services.geocoding import GeocodingService, NominatimGeocoder
from flora_backend.app.services.location_store import LocationStore
from flora_backend.app.services.order_source import OrderSource
from flora_backend.app.services.route_service import RouteService

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    1. Validates JWT token signature and expiry
    2. Verifies the user still exists and is active (real-time check)
    3. Refreshes role and organization from the database

    Returns:
        Token payload with ``user_id``, ``role`` and ``organization_id``

    Raises:
        HTTPException: 401 if authentication fails, 403 if the user is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return {
        **payload,
        "user_id": user.id,
        "role": user.role.value,
        "organization_id": user.organization_id,
    }


def get_location_store(db: AsyncSession = Depends(get_db)) -> LocationStore:
    return LocationStore(db)


def get_route_cache(request: Request) -> RouteCache:
    return request.app.state.route_cache


def get_route_service(
    db: AsyncSession = Depends(get_db),
    cache: RouteCache = Depends(get_route_cache),
) -> RouteService:
    return RouteService(
        location_store=LocationStore(db),
        order_source=OrderSource(db),
        cache=cache,
        max_two_opt_stops=settings.route_two_opt_max_stops,
        max_passes=settings.route_two_opt_max_passes,
        min_gain_km=settings.route_two_opt_min_gain_km,
    )


def get_geocoder(request: Request) -> NominatimGeocoder:
    return request.app.state.geocoder


def get_geocoding_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> GeocodingService:
    return GeocodingService(db, geocoder, request.app.state.geocode_limiter)
