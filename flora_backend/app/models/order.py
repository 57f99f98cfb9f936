"""
Order database model (delivery view).

The order CRUD service owns this table; the routing and geocoding code reads
destinations from it and writes back geocoding results.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Text
from sqlalchemy.sql import func
from flora_backend.app.db.session import Base
from flora_backend.app.models.order_enums import OrderStatus, GeoStatus


class Order(Base):
    """Delivery order with an optionally geocoded address."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    courier_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    client_name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False, default="")
    status = Column(Enum(OrderStatus), default=OrderStatus.NEW, nullable=False, index=True)

    # Geocoding
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    geo_status = Column(Enum(GeoStatus), default=GeoStatus.NONE, nullable=False)
    geo_updated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status.value}', geo='{self.geo_status.value}')>"
