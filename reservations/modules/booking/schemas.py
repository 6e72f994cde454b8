"""Booking schemas."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from reservations.core.enums import BookingStatusEnum, CancelledByEnum, PaymentStatusEnum

CLOCK_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class CustomerDetails(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    phone_number: str = Field(min_length=5, max_length=32)
    email: str | None = Field(default=None, max_length=255)


class FoodOrderLink(BaseModel):
    """Restaurant order placed together with the booking."""

    restaurant_id: UUID
    order_id: UUID | None = None
    ordered_at: dt.datetime | None = None


class SlotRequest(BaseModel):
    """One port interval. Date and start time are station-local.

    A start after midnight of an overnight window names the calendar day it
    falls on.
    """

    station_id: UUID
    port_id: UUID
    date: dt.date
    start_time: str = Field(pattern=CLOCK_PATTERN)
    duration_minutes: int = Field(gt=0)


class BookingCreate(SlotRequest):
    """Create booking request."""

    customer: CustomerDetails | None = None
    vehicle_number: str | None = Field(default=None, max_length=32)
    food_order: FoodOrderLink | None = None


class BookingQuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    price_per_unit: Decimal
    estimated_units: Decimal
    base_cost: Decimal
    platform_fee: Decimal
    total_amount: Decimal


class SlotConflictRead(BaseModel):
    booking_id: UUID
    start_at: dt.datetime
    end_at: dt.datetime
    local_window: str


class SlotCheckRead(BaseModel):
    """Whether an interval could be booked right now."""

    model_config = ConfigDict(from_attributes=True)

    station_id: UUID
    port_id: UUID
    start_at: dt.datetime
    end_at: dt.datetime
    duration_minutes: int
    is_available: bool
    quote: BookingQuoteRead
    conflicts: list[SlotConflictRead]


class BookingExtendRequest(BaseModel):
    additional_minutes: int = Field(gt=0)


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_reference: str
    user_id: UUID
    vendor_id: UUID
    station_id: UUID
    port_id: UUID
    start_at: dt.datetime
    end_at: dt.datetime
    duration_minutes: int
    price_per_unit: Decimal
    estimated_units: Decimal
    base_cost: Decimal
    taxes: Decimal
    service_charges: Decimal
    platform_fee: Decimal
    merchant_amount: Decimal
    total_amount: Decimal
    status: BookingStatusEnum
    payment_status: PaymentStatusEnum
    customer_name: str | None
    customer_phone: str | None
    vehicle_number: str | None
    food_order_restaurant_id: UUID | None
    food_order_id: UUID | None
    cancelled_by: CancelledByEnum | None
    cancellation_reason: str | None
    cancelled_at: dt.datetime | None
    refund_eligible: bool | None
    hours_before_start: Decimal | None
    actual_start_at: dt.datetime | None
    actual_end_at: dt.datetime | None
    charged_minutes: int | None
    usage_refund_amount: Decimal | None
    final_amount: Decimal | None
    completed_at: dt.datetime | None
    created_at: dt.datetime
    updated_at: dt.datetime


class ExpirySweepRead(BaseModel):
    expired: int
