"""
Read access to a courier's open deliveries.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flora_backend.app.models.order import Order
from flora_backend.app.models.order_enums import ROUTABLE_STATUSES


class OrderSource:
    """Queries the orders table on behalf of the route service."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_open_deliveries(self, organization_id: int, courier_id: int) -> List[Order]:
        """
        Orders assigned to the courier that still need delivering
        (ASSEMBLED or ON_DELIVERY), oldest first.
        """
        result = await self.db.execute(
            select(Order).where(
                Order.organization_id == organization_id,
                Order.courier_id == courier_id,
                Order.status.in_(ROUTABLE_STATUSES),
            ).order_by(Order.id)
        )
        return list(result.scalars().all())
