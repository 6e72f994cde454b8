"""Refund repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.enums import RefundStatusEnum
from reservations.modules.refunds.models import Refund


class RefundRepository:
    """DB operations for refunds."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_refund(self, **fields) -> Refund:
        refund = Refund(**fields)
        self.session.add(refund)
        await self.session.flush()
        return refund

    async def get_refund_by_booking_id(self, booking_id: UUID) -> Refund | None:
        return await self.session.scalar(select(Refund).where(Refund.booking_id == booking_id))

    async def get_refund_for_user(self, identifier: str, user_id: UUID) -> Refund | None:
        """Look up by refund reference or by id, restricted to the owner."""
        conditions = [Refund.refund_reference == identifier]
        try:
            conditions.append(Refund.id == UUID(identifier))
        except ValueError:
            pass
        stmt = select(Refund).where(or_(*conditions), Refund.user_id == user_id)
        return await self.session.scalar(stmt)

    async def list_user_refunds(
        self,
        user_id: UUID,
        *,
        status: RefundStatusEnum | None,
        date_from: datetime | None,
        date_to: datetime | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Refund], int]:
        base_stmt: Select[tuple[Refund]] = select(Refund).where(Refund.user_id == user_id)
        if status is not None:
            base_stmt = base_stmt.where(Refund.refund_status == status)
        if date_from is not None:
            base_stmt = base_stmt.where(Refund.created_at >= date_from)
        if date_to is not None:
            base_stmt = base_stmt.where(Refund.created_at <= date_to)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Refund.created_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total
