"""Booking repository layer."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.enums import OCCUPYING_BOOKING_STATUSES, BookingStatusEnum
from reservations.modules.booking.models import Booking


class BookingRepository:
    """DB operations for bookings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_booking(self, **fields) -> Booking:
        booking = Booking(**fields)
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID, *, lock: bool = False) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def find_port_bookings(
        self,
        port_id: UUID,
        range_start: datetime,
        range_end: datetime,
        *,
        exclude_booking_id: UUID | None = None,
        starts_at_or_after: datetime | None = None,
    ) -> list[Booking]:
        """Confirmed/active bookings on port whose raw interval intersects the range."""
        stmt = select(Booking).where(
            Booking.port_id == port_id,
            Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
            Booking.start_at < range_end,
            Booking.end_at > range_start,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        if starts_at_or_after is not None:
            stmt = stmt.where(Booking.start_at >= starts_at_or_after)
        stmt = stmt.order_by(Booking.start_at.asc())
        return list((await self.session.scalars(stmt)).all())

    async def list_occupying_bookings(
        self,
        port_ids: Sequence[UUID],
        range_start: datetime,
        range_end: datetime,
    ) -> list[Booking]:
        if not port_ids:
            return []
        stmt = (
            select(Booking)
            .where(
                Booking.port_id.in_(port_ids),
                Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
                Booking.start_at < range_end,
                Booking.end_at > range_start,
            )
            .order_by(Booking.port_id, Booking.start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def count_occupying_bookings(self, port_id: UUID, *, exclude_booking_id: UUID | None = None) -> int:
        stmt = select(func.count(Booking.id)).where(
            Booking.port_id == port_id,
            Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return int((await self.session.scalar(stmt)) or 0)

    async def find_overdue_confirmed(self, cutoff: datetime) -> list[Booking]:
        """Confirmed bookings that started before cutoff and were never checked in."""
        stmt = (
            select(Booking)
            .where(
                Booking.status == BookingStatusEnum.CONFIRMED,
                Booking.actual_start_at.is_(None),
                Booking.start_at < cutoff,
            )
            .order_by(Booking.start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def save(self, booking: Booking) -> Booking:
        await self.session.flush()
        return booking

    async def list_user_bookings(
        self,
        user_id: UUID,
        *,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking).where(Booking.user_id == user_id)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.start_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total
