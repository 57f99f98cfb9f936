"""
Order address geocoding via OpenStreetMap Nominatim.

Nominatim allows roughly one request per second, so every call goes through
a shared ``FixedDelayRateLimiter``. Batch runs commit each order as they go:
a failure on one address marks that order FAILED and the batch carries on.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from flora_backend.app.core.exceptions import (
    MissingAddressError,
    ResourceNotFoundError,
    UpstreamGeocodeError,
)
from flora_backend.app.core.reliability import (
    CircuitBreaker,
    CircuitOpenError,
    FixedDelayRateLimiter,
    rate_limited,
)
from flora_backend.app.models.order import Order
from flora_backend.app.models.order_enums import GeoStatus, GEOCODABLE_STATUSES
from flora_backend.app.services.location_store import validate_coordinates

logger = logging.getLogger("flora.geocoding")


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass
class GeocodeBatchResult:
    success: int = 0
    failed: int = 0
    processed: int = 0
    total: int = 0


class NominatimGeocoder:
    """
    Minimal async Nominatim client.

    ``geocode`` returns None when the address is not found and raises
    UpstreamGeocodeError when the provider cannot be reached or answers
    with an error.
    """

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        timeout: float = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"User-Agent": user_agent},
            timeout=timeout,
        )

    async def geocode(self, address: str) -> Optional[GeoPoint]:
        try:
            results = await self.circuit_breaker.call(self._search, address)
        except CircuitOpenError as exc:
            raise UpstreamGeocodeError("Geocoding temporarily unavailable") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamGeocodeError(f"Geocoding failed: {exc}") from exc

        if not results:
            return None

        first = results[0]
        try:
            return GeoPoint(lat=float(first["lat"]), lon=float(first["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamGeocodeError("Malformed geocoding response") from exc

    async def _search(self, address: str) -> list:
        response = await self.client.get(
            "/search",
            params={"q": address, "format": "json", "limit": 1},
        )
        response.raise_for_status()
        return response.json()

    async def aclose(self):
        await self.client.aclose()


class GeocodingService:
    """Geocodes orders of one organization and stores the results."""

    def __init__(self, db: AsyncSession, geocoder: NominatimGeocoder, limiter: FixedDelayRateLimiter):
        self.db = db
        self.geocoder = geocoder
        self.limiter = limiter

    async def geocode_pending(self, organization_id: int) -> GeocodeBatchResult:
        """
        Geocode every active order that has an address but no coordinates.

        Returns:
            Counts of succeeded, failed and processed orders out of the total
        """
        result = await self.db.execute(
            select(Order).where(
                Order.organization_id == organization_id,
                Order.latitude.is_(None),
                func.trim(Order.address) != "",
                Order.status.in_(GEOCODABLE_STATUSES),
            ).order_by(Order.id)
        )
        orders = list(result.scalars().all())
        batch = GeocodeBatchResult(total=len(orders))

        async for order in rate_limited(orders, self.limiter):
            batch.processed += 1
            try:
                point = await self.geocoder.geocode(order.address)
            except UpstreamGeocodeError as exc:
                logger.warning("Geocoding order %s failed: %s", order.id, exc.message)
                point = None

            if point is None:
                self._mark_failed(order)
                batch.failed += 1
            else:
                self._mark_success(order, point)
                batch.success += 1
            await self.db.commit()

        logger.info("Batch geocode for organization %s: %d ok, %d failed of %d",
                    organization_id, batch.success, batch.failed, batch.total)
        return batch

    async def geocode_order(self, organization_id: int, order_id: int) -> Order:
        """
        Geocode one order's address.

        Raises:
            ResourceNotFoundError: order not in the organization
            MissingAddressError: order has no address
            UpstreamGeocodeError: provider failure (order marked FAILED)
        """
        order = await self._get_order(organization_id, order_id)
        if not order.address or not order.address.strip():
            raise MissingAddressError(order_id)

        order.geo_status = GeoStatus.PENDING
        await self.db.commit()

        await self.limiter.acquire()
        try:
            point = await self.geocoder.geocode(order.address)
        except UpstreamGeocodeError:
            self._mark_failed(order)
            await self.db.commit()
            raise

        if point is None:
            self._mark_failed(order)
        else:
            self._mark_success(order, point)
        await self.db.commit()
        return order

    async def set_coordinates(self, organization_id: int, order_id: int, lat, lon) -> Order:
        """Store manually entered coordinates for an order."""
        lat, lon = validate_coordinates(lat, lon)
        order = await self._get_order(organization_id, order_id)
        self._mark_success(order, GeoPoint(lat=lat, lon=lon))
        await self.db.commit()
        return order

    async def _get_order(self, organization_id: int, order_id: int) -> Order:
        result = await self.db.execute(
            select(Order).where(Order.id == order_id, Order.organization_id == organization_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise ResourceNotFoundError("Order", order_id)
        return order

    @staticmethod
    def _mark_success(order: Order, point: GeoPoint):
        order.latitude = point.lat
        order.longitude = point.lon
        order.geo_status = GeoStatus.SUCCESS
        order.geo_updated_at = datetime.utcnow()

    @staticmethod
    def _mark_failed(order: Order):
        order.geo_status = GeoStatus.FAILED
        order.geo_updated_at = datetime.utcnow()
