"""
Order enumerations.
"""

import enum


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    NEW = "NEW"
    IN_WORK = "IN_WORK"
    ASSEMBLED = "ASSEMBLED"
    ON_DELIVERY = "ON_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"


class GeoStatus(str, enum.Enum):
    """Geocoding state of an order's delivery address."""
    NONE = "NONE"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# Orders a courier still has to drive to
ROUTABLE_STATUSES = [OrderStatus.ASSEMBLED, OrderStatus.ON_DELIVERY]

# Orders worth geocoding ahead of delivery
GEOCODABLE_STATUSES = [
    OrderStatus.NEW,
    OrderStatus.IN_WORK,
    OrderStatus.ASSEMBLED,
    OrderStatus.ON_DELIVERY,
]
