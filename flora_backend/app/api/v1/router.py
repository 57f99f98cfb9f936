"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from flora_backend.app.api.v1.endpoints import courier_tracking, geocoding

router = APIRouter()

# Courier position reporting and manager tracking views
router.include_router(courier_tracking.courier_router)
router.include_router(courier_tracking.manager_router)

# Order geocoding
router.include_router(geocoding.router)
