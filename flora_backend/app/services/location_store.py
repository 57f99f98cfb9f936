"""
Courier location store.

Ingests courier GPS reports, keeps the latest position per courier and an
append-only history, and trims history on demand.
"""

import logging
import math
import numbers
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from flora_backend.app.core.exceptions import InvalidPositionError
from flora_backend.app.models.courier_location import CourierLocation, CourierLocationLatest
from flora_backend.app.models.user import User

logger = logging.getLogger("flora.tracking")

LatestWithCourier = Tuple[CourierLocationLatest, str, Optional[str]]


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _parse_order_id(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise InvalidPositionError("active order id must be an integer", details={"active_order_id": repr(value)})


def validate_coordinates(lat, lon) -> Tuple[float, float]:
    """
    Validate a latitude/longitude pair.

    Raises:
        InvalidPositionError: if either value is missing, non-numeric,
            non-finite or out of range
    """
    if not _is_number(lat) or not _is_number(lon):
        raise InvalidPositionError(details={"lat": repr(lat), "lon": repr(lon)})

    lat, lon = float(lat), float(lon)
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidPositionError("lat and lon must be finite", details={"lat": lat, "lon": lon})
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidPositionError("lat or lon out of range", details={"lat": lat, "lon": lon})

    return lat, lon


class LocationStore:
    """
    Persistence for courier positions, bound to one database session.

    Usage:
        store = LocationStore(db)
        await store.report(org_id, courier_id, 55.75, 37.62)
        latest = await store.get_latest(org_id, courier_id)
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def report(
        self,
        organization_id: int,
        courier_id: int,
        lat,
        lon,
        accuracy=None,
        active_order_id=None,
        recorded_at: Optional[datetime] = None,
    ) -> CourierLocation:
        """
        Accept a position report.

        Upserts the latest position and appends one history row, both
        stamped with the same instant, in a single commit.

        Args:
            organization_id: Courier's organization
            courier_id: Reporting courier
            lat, lon: Coordinates in degrees
            accuracy: Optional GPS accuracy in meters
            active_order_id: Order being delivered when the fix was taken;
                an int or a string of digits
            recorded_at: Acceptance instant; defaults to now (UTC)

        Returns:
            The appended history row

        Raises:
            InvalidPositionError: if coordinates, accuracy or the order id are
                invalid (nothing written)
        """
        lat, lon = validate_coordinates(lat, lon)
        if accuracy is not None:
            if not _is_number(accuracy) or not math.isfinite(accuracy) or accuracy < 0:
                raise InvalidPositionError("accuracy must be a non-negative number",
                                           details={"accuracy": repr(accuracy)})
            accuracy = float(accuracy)
        active_order_id = _parse_order_id(active_order_id)

        stamp = recorded_at or datetime.utcnow()
        values = {
            "latitude": lat,
            "longitude": lon,
            "accuracy_meters": accuracy,
            "active_order_id": active_order_id,
            "recorded_at": stamp,
        }

        try:
            await self._upsert_latest(organization_id, courier_id, values, updated_at=datetime.utcnow())

            entry = CourierLocation(organization_id=organization_id, courier_id=courier_id, **values)
            self.db.add(entry)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(entry)
        return entry

    async def _upsert_latest(self, organization_id: int, courier_id: int, values: dict, updated_at: datetime):
        dialect = self.db.get_bind().dialect.name
        row = {"organization_id": organization_id, "courier_id": courier_id, "updated_at": updated_at, **values}

        if dialect in ("postgresql", "sqlite"):
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert

            stmt = insert(CourierLocationLatest).values(**row)
            stmt = stmt.on_conflict_do_update(
                index_elements=[CourierLocationLatest.organization_id, CourierLocationLatest.courier_id],
                set_={key: stmt.excluded[key] for key in (*values, "updated_at")},
            )
            await self.db.execute(stmt)
            return

        # Other backends: read-then-write inside the same transaction
        latest = await self.get_latest(organization_id, courier_id)
        if latest is None:
            self.db.add(CourierLocationLatest(**row))
        else:
            for key, value in values.items():
                setattr(latest, key, value)
            latest.updated_at = updated_at
        await self.db.flush()

    async def get_latest(self, organization_id: int, courier_id: int) -> Optional[CourierLocationLatest]:
        """Latest position of a courier, or None if it never reported."""
        result = await self.db.execute(
            select(CourierLocationLatest).where(
                CourierLocationLatest.organization_id == organization_id,
                CourierLocationLatest.courier_id == courier_id,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_history_since(
        self,
        organization_id: int,
        courier_id: int,
        since: datetime,
    ) -> List[CourierLocation]:
        """History entries with recorded_at >= since, oldest first."""
        result = await self.db.execute(
            select(CourierLocation).where(
                CourierLocation.organization_id == organization_id,
                CourierLocation.courier_id == courier_id,
                CourierLocation.recorded_at >= since,
            ).order_by(CourierLocation.recorded_at, CourierLocation.id)
        )
        return list(result.scalars().all())

    async def get_all_latest(self, organization_id: int) -> List[LatestWithCourier]:
        """Latest position of every courier in the organization with name and phone."""
        result = await self.db.execute(
            select(CourierLocationLatest, User.name, User.phone)
            .join(User, CourierLocationLatest.courier_id == User.id)
            .where(CourierLocationLatest.organization_id == organization_id)
            .order_by(User.name)
            .execution_options(populate_existing=True)
        )
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def purge_older_than(self, organization_id: int, cutoff: datetime) -> int:
        """
        Delete history entries recorded at or before ``cutoff``.

        Latest positions are left alone even when older than the cutoff.

        Returns:
            Number of deleted history rows
        """
        result = await self.db.execute(
            delete(CourierLocation).where(
                CourierLocation.organization_id == organization_id,
                CourierLocation.recorded_at <= cutoff,
            )
        )
        await self.db.commit()

        deleted = result.rowcount or 0
        logger.info("Purged %d location history rows for organization %s (cutoff %s)",
                    deleted, organization_id, cutoff.isoformat())
        return deleted
