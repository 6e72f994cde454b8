"""Refund ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from reservations.core.database import Base, BaseModelMixin, enum_type
from reservations.core.enums import RefundStatusEnum


class Refund(BaseModelMixin, Base):
    """Refund derived from a cancelled booking. One per booking."""

    __tablename__ = "refunds"

    refund_reference: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    booking_id: Mapped[UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    vendor_id: Mapped[UUID] = mapped_column(nullable=False, index=True)

    original_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    base_refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    slot_occupancy_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    slot_occupancy_fee_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    platform_fee_deducted: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    final_refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    refund_percentage: Mapped[int] = mapped_column(nullable=False)
    hours_before_start: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    refund_status: Mapped[RefundStatusEnum] = mapped_column(
        enum_type(RefundStatusEnum, "refund_status_enum"),
        default=RefundStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    # {"ip_address", "user_agent", "request_signature", "validated_at", "validated_by"}
    security_validation: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    # Append-only; reassign the list so the change is tracked.
    audit_trail: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
