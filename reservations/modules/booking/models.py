"""Booking ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reservations.core.database import Base, BaseModelMixin, enum_type
from reservations.core.enums import BookingStatusEnum, CancelledByEnum, PaymentStatusEnum

if TYPE_CHECKING:
    from reservations.modules.stations.models import ChargingPort, ChargingStation


class Booking(BaseModelMixin, Base):
    """Reservation of one charging port for one time interval.

    Confirmed and active bookings on the same port never overlap once each
    interval is widened by the booking buffer; the migration backs this with
    an exclusion constraint.
    """

    __tablename__ = "bookings"

    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    vendor_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    station_id: Mapped[UUID] = mapped_column(
        ForeignKey("charging_stations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    port_id: Mapped[UUID] = mapped_column(
        ForeignKey("charging_ports.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    estimated_units: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    base_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    taxes: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    service_charges: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    merchant_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[BookingStatusEnum] = mapped_column(
        enum_type(BookingStatusEnum, "booking_status_enum"),
        default=BookingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[PaymentStatusEnum] = mapped_column(
        enum_type(PaymentStatusEnum, "payment_status_enum"),
        default=PaymentStatusEnum.PENDING,
        nullable=False,
    )

    customer_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vehicle_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    food_order_restaurant_id: Mapped[UUID | None] = mapped_column(nullable=True)
    food_order_id: Mapped[UUID | None] = mapped_column(nullable=True)
    food_order_placed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cancelled_by: Mapped[CancelledByEnum | None] = mapped_column(
        enum_type(CancelledByEnum, "cancelled_by_enum"),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    refund_eligible: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    hours_before_start: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)

    actual_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    charged_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    final_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    station: Mapped[ChargingStation] = relationship()
    port: Mapped[ChargingPort] = relationship()
