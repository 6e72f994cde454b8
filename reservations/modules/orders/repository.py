"""Food order repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.enums import CANCELLABLE_ORDER_STATUSES, CancelledByEnum, FoodOrderStatusEnum
from reservations.modules.orders.models import FoodOrder


class OrderRepository:
    """DB operations for food orders linked to bookings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_cancellable_order(self, order_id: UUID) -> FoodOrder | None:
        stmt = select(FoodOrder).where(
            FoodOrder.id == order_id,
            FoodOrder.status.in_(CANCELLABLE_ORDER_STATUSES),
        )
        return await self.session.scalar(stmt)

    async def find_cancellable_order(
        self,
        restaurant_id: UUID,
        customer_phone: str,
        ordered_from: datetime,
        ordered_to: datetime,
        customer_name: str | None = None,
    ) -> FoodOrder | None:
        """Return most recent cancellable order for the customer inside the time window."""
        stmt = select(FoodOrder).where(
            FoodOrder.restaurant_id == restaurant_id,
            FoodOrder.customer_phone == customer_phone,
            FoodOrder.ordered_at >= ordered_from,
            FoodOrder.ordered_at <= ordered_to,
            FoodOrder.status.in_(CANCELLABLE_ORDER_STATUSES),
        )
        if customer_name is not None:
            stmt = stmt.where(FoodOrder.customer_name == customer_name)
        stmt = stmt.order_by(FoodOrder.ordered_at.desc()).limit(1)
        return await self.session.scalar(stmt)

    async def cancel_order(
        self,
        order: FoodOrder,
        *,
        reason: str,
        cancelled_by: CancelledByEnum,
        refund_eligible: bool,
        cancelled_at: datetime,
    ) -> FoodOrder:
        order.status = FoodOrderStatusEnum.CANCELLED
        order.cancellation_reason = reason
        order.cancelled_by = cancelled_by
        order.refund_eligible = refund_eligible
        order.cancelled_at = cancelled_at
        await self.session.flush()
        return order
