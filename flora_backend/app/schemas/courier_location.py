"""
Courier location schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional


class LocationReport(BaseModel):
    """
    Position report sent by a courier device.

    Fields are taken as sent and validated by the location store, so a
    malformed body is always rejected with a 400 ``ERR_POSITION_INVALID``.
    The mobile client sends ``activeOrderId``; ``active_order_id`` is
    accepted too.
    """
    lat: Any = None
    lon: Any = None
    accuracy: Any = None
    active_order_id: Any = Field(None, alias="activeOrderId")

    class Config:
        populate_by_name = True


class LocationReportResponse(BaseModel):
    """Response after accepting a position report."""
    success: bool
    location_id: int
    recorded_at: datetime


class CourierLocationResponse(BaseModel):
    """Single GPS position (latest or history)."""
    id: int
    courier_id: int
    latitude: float
    longitude: float
    accuracy_meters: Optional[float]
    active_order_id: Optional[int]
    recorded_at: datetime

    class Config:
        from_attributes = True


class CourierLatestLocationResponse(CourierLocationResponse):
    """Latest position joined with courier contact details."""
    courier_name: str
    courier_phone: Optional[str]


class HistoryPurgeResponse(BaseModel):
    """Response after a retention purge."""
    success: bool
    deleted: int
    cutoff: datetime
