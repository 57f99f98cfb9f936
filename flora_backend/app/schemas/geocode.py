"""
Geocoding schemas.
"""

from pydantic import BaseModel
from typing import Any, Optional


class GeocodeBatchResponse(BaseModel):
    """Counts from a batch geocoding run."""
    success: int
    failed: int
    processed: int
    total: int


class GeocodeOrderResponse(BaseModel):
    """Result of geocoding a single order."""
    success: bool
    order_id: int
    geo_status: str
    lat: Optional[float] = None
    lon: Optional[float] = None


class CoordinatesUpdate(BaseModel):
    """Manually entered coordinates; validated like a position report."""
    lat: Any = None
    lon: Any = None
