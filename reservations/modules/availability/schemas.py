"""Availability schemas."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from reservations.core.enums import BookingStatusEnum


class DurationPriceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    duration_minutes: int
    estimated_units: Decimal
    total_amount: Decimal


class SlotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_at: dt.datetime
    local_date: dt.date
    local_time: str
    is_available: bool
    is_bookable: bool
    pricing: list[DurationPriceRead]


class PortAvailabilityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    port_id: UUID
    port_number: str
    connector_type: str
    power_output_kw: Decimal
    price_per_unit: Decimal
    slots: list[SlotRead]
    available_count: int
    bookable_count: int
    total_count: int


class StationAvailabilityRead(BaseModel):
    """Slot listing for one station-local day."""

    model_config = ConfigDict(from_attributes=True)

    station_id: UUID
    date: dt.date
    is_open: bool
    operating_window: str | None
    ports: list[PortAvailabilityRead]


class PortSlotCountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    port_id: UUID
    port_number: str
    available_count: int
    bookable_count: int


class DailySlotCountsRead(BaseModel):
    """Per-port slot counts for one station-local day."""

    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    is_open: bool
    ports: list[PortSlotCountRead]


class BookedWindowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: UUID
    start_at: dt.datetime
    end_at: dt.datetime
    local_window: str
    status: BookingStatusEnum


class PortConflictsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    port_id: UUID
    port_number: str
    windows: list[BookedWindowRead]
