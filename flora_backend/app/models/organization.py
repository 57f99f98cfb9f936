"""
Organization database model.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from flora_backend.app.db.session import Base


class Organization(Base):
    """Tenant that owns users, orders and courier positions."""
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Organization(id={self.id}, name='{self.name}')>"
