"""
Courier Tracking API Endpoints.

Couriers report their GPS position; owners and managers watch couriers on the
map, read their breadcrumb history, plan routes and trim old history.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from flora_backend.app.core.config import settings
from flora_backend.app.core.dependencies import get_location_store, get_route_service
from flora_backend.app.core.guards import require_courier, require_management
from flora_backend.app.schemas.courier_location import (
    LocationReport,
    LocationReportResponse,
    CourierLocationResponse,
    CourierLatestLocationResponse,
    HistoryPurgeResponse,
)
from flora_backend.app.schemas.route import RouteResult
from flora_backend.app.services.location_store import LocationStore
from flora_backend.app.services.route_service import RouteService

courier_router = APIRouter(prefix="/courier", tags=["Courier - Location"])
manager_router = APIRouter(prefix="/manager/couriers", tags=["Manager - Courier Tracking"])


@courier_router.post("/location", response_model=LocationReportResponse)
async def report_location(
    report: LocationReport,
    current_user: dict = Depends(require_courier),
    store: LocationStore = Depends(get_location_store),
):
    """
    Report the courier's current GPS position (Courier only).

    Updates the courier's latest position and appends to the history.
    Returns 400 if lat/lon are missing or not numbers.
    """
    entry = await store.report(
        organization_id=current_user["organization_id"],
        courier_id=current_user["user_id"],
        lat=report.lat,
        lon=report.lon,
        accuracy=report.accuracy,
        active_order_id=report.active_order_id,
    )
    return LocationReportResponse(success=True, location_id=entry.id, recorded_at=entry.recorded_at)


@courier_router.get("/location/latest", response_model=Optional[CourierLocationResponse])
async def get_my_latest_location(
    current_user: dict = Depends(require_courier),
    store: LocationStore = Depends(get_location_store),
):
    """Courier's own latest position, or null if nothing was reported yet."""
    latest = await store.get_latest(current_user["organization_id"], current_user["user_id"])
    if latest is None:
        return None
    return CourierLocationResponse.model_validate(latest)


@courier_router.delete("/location/history", response_model=HistoryPurgeResponse)
async def purge_location_history(
    current_user: dict = Depends(require_management),
    store: LocationStore = Depends(get_location_store),
):
    """
    Delete position history older than the retention window (Owner/Manager).

    Latest positions are kept regardless of age.
    """
    cutoff = datetime.utcnow() - timedelta(days=settings.location_retention_days)
    deleted = await store.purge_older_than(current_user["organization_id"], cutoff)
    return HistoryPurgeResponse(success=True, deleted=deleted, cutoff=cutoff)


@manager_router.get("/locations", response_model=List[CourierLatestLocationResponse])
async def list_courier_locations(
    current_user: dict = Depends(require_management),
    store: LocationStore = Depends(get_location_store),
):
    """Latest position of every courier in the organization (Owner/Manager)."""
    rows = await store.get_all_latest(current_user["organization_id"])
    return [
        CourierLatestLocationResponse(
            **CourierLocationResponse.model_validate(latest).model_dump(),
            courier_name=name,
            courier_phone=phone,
        )
        for latest, name, phone in rows
    ]


@manager_router.get("/{courier_id}/history", response_model=List[CourierLocationResponse])
async def get_courier_history(
    courier_id: int = Path(..., description="Courier user ID"),
    since: Optional[datetime] = Query(None, description="Start of the window (default: 24 hours ago)"),
    current_user: dict = Depends(require_management),
    store: LocationStore = Depends(get_location_store),
):
    """Position history of a courier since ``since``, oldest first (Owner/Manager)."""
    if since is None:
        since = datetime.utcnow() - timedelta(hours=settings.location_history_default_hours)
    elif since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)

    history = await store.get_history_since(current_user["organization_id"], courier_id, since)
    return [CourierLocationResponse.model_validate(entry) for entry in history]


@manager_router.get("/{courier_id}/route", response_model=RouteResult)
async def get_courier_route(
    courier_id: int = Path(..., description="Courier user ID"),
    current_user: dict = Depends(require_management),
    service: RouteService = Depends(get_route_service),
):
    """
    Optimized delivery route for a courier (Owner/Manager).

    Results are cached for a short time; a courier's newest position shows up
    once the cached route expires.
    """
    return await service.get_route(current_user["organization_id"], courier_id)
