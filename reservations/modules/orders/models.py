"""Food order ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from reservations.core.database import Base, BaseModelMixin, enum_type
from reservations.core.enums import CancelledByEnum, FoodOrderStatusEnum


class FoodOrder(BaseModelMixin, Base):
    """Restaurant order placed alongside a charging booking."""

    __tablename__ = "food_orders"

    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    restaurant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    vendor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[FoodOrderStatusEnum] = mapped_column(
        enum_type(FoodOrderStatusEnum, "food_order_status_enum"),
        default=FoodOrderStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[CancelledByEnum | None] = mapped_column(
        enum_type(CancelledByEnum, "cancelled_by_enum"),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    refund_eligible: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
