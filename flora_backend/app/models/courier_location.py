"""
Courier location models.

``CourierLocationLatest`` holds one row per courier for O(1) "where is the
courier now" lookups; ``CourierLocation`` is the append-only breadcrumb log
that the retention purge trims.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Index, UniqueConstraint
from sqlalchemy.sql import func
from flora_backend.app.db.session import Base


class CourierLocationLatest(Base):
    """
    Latest known position per (organization, courier).

    Overwritten by every accepted report.
    """
    __tablename__ = "courier_location_latest"
    __table_args__ = (
        UniqueConstraint("organization_id", "courier_id", name="uq_courier_loc_latest_org_courier"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    courier_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy_meters = Column(Float, nullable=True)
    active_order_id = Column(Integer, nullable=True)

    recorded_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<CourierLocationLatest(courier_id={self.courier_id}, lat={self.latitude}, lng={self.longitude})>"


class CourierLocation(Base):
    """
    Position history entry.

    Never updated in place; only appended and bulk-deleted by retention.
    """
    __tablename__ = "courier_locations"
    __table_args__ = (
        Index("ix_courier_locations_org_courier_time", "organization_id", "courier_id", "recorded_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    courier_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy_meters = Column(Float, nullable=True)
    active_order_id = Column(Integer, nullable=True)

    recorded_at = Column(DateTime, nullable=False)  # When the report was accepted
    created_at = Column(DateTime, server_default=func.now(), nullable=False)  # When inserted to DB

    def __repr__(self):
        return f"<CourierLocation(courier_id={self.courier_id}, lat={self.latitude}, lng={self.longitude})>"
