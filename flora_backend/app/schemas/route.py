"""
Route optimization schemas.
"""

from pydantic import BaseModel
from typing import List, Optional

from flora_backend.app.schemas.courier_location import CourierLocationResponse


class RouteStop(BaseModel):
    """One delivery in the optimized visiting order."""
    order_id: int
    position: int  # 1-based place in the route
    lat: float
    lon: float
    address: str
    status: str
    client_name: str


class RouteResult(BaseModel):
    """Optimized route for a courier."""
    route: List[RouteStop] = []
    total_distance_km: float = 0.0
    courier_location: Optional[CourierLocationResponse] = None
    order_count: int = 0
