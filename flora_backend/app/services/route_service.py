"""
Courier route service.

Combines the courier's latest position, their open deliveries and the route
heuristic, behind the route cache.
"""

import logging
from typing import Optional

from flora_backend.app.models.courier_location import CourierLocationLatest
from flora_backend.app.schemas.courier_location import CourierLocationResponse
from flora_backend.app.schemas.route import RouteResult, RouteStop
from flora_backend.app.services.cache import RouteCache
from flora_backend.app.services.location_store import LocationStore
from flora_backend.app.services.order_source import OrderSource
from flora_backend.app.services.route_optimizer import (
    RoutePoint,
    compute_route,
    TWO_OPT_MAX_STOPS,
    TWO_OPT_MAX_PASSES,
    TWO_OPT_MIN_GAIN_KM,
)

logger = logging.getLogger("flora.routing")


class RouteService:
    """
    Builds optimized delivery routes for couriers.

    Usage:
        service = RouteService(LocationStore(db), OrderSource(db), cache)
        result = await service.get_route(org_id, courier_id)
    """

    def __init__(
        self,
        location_store: LocationStore,
        order_source: OrderSource,
        cache: RouteCache,
        max_two_opt_stops: int = TWO_OPT_MAX_STOPS,
        max_passes: int = TWO_OPT_MAX_PASSES,
        min_gain_km: float = TWO_OPT_MIN_GAIN_KM,
    ):
        self.location_store = location_store
        self.order_source = order_source
        self.cache = cache
        self.max_two_opt_stops = max_two_opt_stops
        self.max_passes = max_passes
        self.min_gain_km = min_gain_km

    async def get_route(self, organization_id: int, courier_id: int) -> RouteResult:
        """Optimized route for a courier, reusing a fresh cached result."""

        async def compute() -> RouteResult:
            return await self.build_route(organization_id, courier_id)

        return await self.cache.get_or_compute(organization_id, courier_id, compute)

    async def build_route(self, organization_id: int, courier_id: int) -> RouteResult:
        """Compute a route without consulting the cache."""
        latest = await self.location_store.get_latest(organization_id, courier_id)
        courier_location = _location_response(latest)

        orders = await self.order_source.get_open_deliveries(organization_id, courier_id)
        geocoded = [o for o in orders if o.latitude is not None and o.longitude is not None]

        if not geocoded:
            return RouteResult(route=[], total_distance_km=0.0, courier_location=courier_location, order_count=0)

        if latest is not None:
            start_lat, start_lon = latest.latitude, latest.longitude
        else:
            # No position yet: start from the first delivery
            start_lat, start_lon = geocoded[0].latitude, geocoded[0].longitude

        points = [RoutePoint(id=o.id, lat=o.latitude, lon=o.longitude) for o in geocoded]
        computation = compute_route(
            start_lat,
            start_lon,
            points,
            max_two_opt_stops=self.max_two_opt_stops,
            max_passes=self.max_passes,
            min_gain_km=self.min_gain_km,
        )

        by_id = {o.id: o for o in geocoded}
        route = []
        for position, order_id in enumerate(computation.order, start=1):
            order = by_id[order_id]
            route.append(RouteStop(
                order_id=order.id,
                position=position,
                lat=order.latitude,
                lon=order.longitude,
                address=order.address,
                status=order.status.value,
                client_name=order.client_name,
            ))

        logger.info("Computed route for courier %s (org %s): %d stops, %.2f km",
                    courier_id, organization_id, len(route), computation.total_distance_km)

        return RouteResult(
            route=route,
            total_distance_km=computation.total_distance_km,
            courier_location=courier_location,
            order_count=len(route),
        )


def _location_response(latest: Optional[CourierLocationLatest]) -> Optional[CourierLocationResponse]:
    if latest is None:
        return None
    return CourierLocationResponse.model_validate(latest)
