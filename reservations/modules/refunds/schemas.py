"""Refund and cancellation schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from reservations.core.enums import RefundStatusEnum
from reservations.modules.booking.schemas import BookingRead


class CancellationRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)
    requested_amount: Decimal | None = Field(default=None, ge=0)


class RefundCalculationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_amount: Decimal
    platform_fee: Decimal
    refund_percentage: int
    base_refund_amount: Decimal
    slot_occupancy_fee: Decimal
    slot_occupancy_fee_percentage: Decimal
    platform_fee_deducted: Decimal
    final_refund_amount: Decimal
    is_eligible: bool


class RefundPreviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: UUID
    booking_reference: str
    can_cancel: bool
    hours_before_start: Decimal
    calculation: RefundCalculationRead
    policy: dict


class RefundRead(BaseModel):
    """Refund response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    refund_reference: str
    booking_id: UUID
    original_amount: Decimal
    platform_fee: Decimal
    base_refund_amount: Decimal
    slot_occupancy_fee: Decimal
    slot_occupancy_fee_percentage: Decimal
    final_refund_amount: Decimal
    refund_percentage: int
    hours_before_start: Decimal
    refund_status: RefundStatusEnum
    audit_trail: list[dict]
    processed_at: datetime | None
    created_at: datetime


class CascadedOrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    refund_eligible: bool | None


class CancellationResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking: BookingRead
    refund: RefundRead | None
    calculation: RefundCalculationRead
    cascaded_order: CascadedOrderRead | None
    cascade_strategy: str | None
