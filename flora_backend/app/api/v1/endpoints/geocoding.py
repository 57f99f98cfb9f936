"""
Order Geocoding API Endpoints.

Owners and managers resolve delivery addresses to coordinates so orders can
be placed on the map and included in courier routes.
"""

from fastapi import APIRouter, Body, Depends, Path

from flora_backend.app.core.dependencies import get_geocoding_service
from flora_backend.app.core.guards import require_management
from flora_backend.app.models.order_enums import GeoStatus
from flora_backend.app.schemas.geocode import (
    CoordinatesUpdate,
    GeocodeBatchResponse,
    GeocodeOrderResponse,
)
from flora_backend.app.services.geocoding import GeocodingService

router = APIRouter(prefix="/orders", tags=["Orders - Geocoding"])


@router.post("/geocode-all", response_model=GeocodeBatchResponse)
async def geocode_all_orders(
    current_user: dict = Depends(require_management),
    service: GeocodingService = Depends(get_geocoding_service),
):
    """
    Geocode every active order that has an address but no coordinates.

    Requests are paced to the provider's limit, so this takes about a second
    per order. Orders whose address cannot be resolved are marked FAILED.
    """
    batch = await service.geocode_pending(current_user["organization_id"])
    return GeocodeBatchResponse(
        success=batch.success,
        failed=batch.failed,
        processed=batch.processed,
        total=batch.total,
    )


@router.post("/{order_id}/geocode", response_model=GeocodeOrderResponse)
async def geocode_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: dict = Depends(require_management),
    service: GeocodingService = Depends(get_geocoding_service),
):
    """Geocode one order's delivery address (Owner/Manager)."""
    order = await service.geocode_order(current_user["organization_id"], order_id)
    return GeocodeOrderResponse(
        success=order.geo_status == GeoStatus.SUCCESS,
        order_id=order.id,
        geo_status=order.geo_status.value,
        lat=order.latitude,
        lon=order.longitude,
    )


@router.post("/{order_id}/coordinates", response_model=GeocodeOrderResponse)
async def set_order_coordinates(
    order_id: int = Path(..., description="Order ID"),
    coordinates: CoordinatesUpdate = Body(...),
    current_user: dict = Depends(require_management),
    service: GeocodingService = Depends(get_geocoding_service),
):
    """Set an order's coordinates by hand (Owner/Manager)."""
    order = await service.set_coordinates(
        current_user["organization_id"], order_id, coordinates.lat, coordinates.lon
    )
    return GeocodeOrderResponse(
        success=True,
        order_id=order.id,
        geo_status=order.geo_status.value,
        lat=order.latitude,
        lon=order.longitude,
    )
