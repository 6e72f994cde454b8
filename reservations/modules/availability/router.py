"""Availability API router."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from reservations.modules.availability.schemas import (
    DailySlotCountsRead,
    PortConflictsRead,
    StationAvailabilityRead,
)
from reservations.modules.availability.service import AvailabilityService, get_availability_service
from reservations.shared.exceptions import ValidationException

router = APIRouter(prefix="/stations", tags=["availability"])


def _parse_dates(raw: str) -> list[date]:
    try:
        return [date.fromisoformat(part.strip()) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise ValidationException("Dates must be comma-separated YYYY-MM-DD values", details={"dates": raw}) from exc


@router.get("/{station_id}/availability", response_model=StationAvailabilityRead)
async def get_station_availability(
    station_id: UUID,
    day: date = Query(alias="date"),
    port_id: UUID | None = Query(default=None),
    service: AvailabilityService = Depends(get_availability_service),
) -> StationAvailabilityRead:
    """Bookable slots per port for a station-local date."""
    availability = await service.get_availability(station_id, day, port_id)
    return StationAvailabilityRead.model_validate(availability)


@router.get("/{station_id}/slot-counts", response_model=list[DailySlotCountsRead])
async def get_slot_counts(
    station_id: UUID,
    dates: str = Query(description="Comma-separated station-local dates"),
    service: AvailabilityService = Depends(get_availability_service),
) -> list[DailySlotCountsRead]:
    """Slot counts per port across several dates."""
    items = await service.get_slot_counts(station_id, _parse_dates(dates))
    return [DailySlotCountsRead.model_validate(item) for item in items]


@router.get("/{station_id}/conflicts", response_model=list[PortConflictsRead])
async def list_port_conflicts(
    station_id: UUID,
    day: date = Query(alias="date"),
    port_id: UUID | None = Query(default=None),
    service: AvailabilityService = Depends(get_availability_service),
) -> list[PortConflictsRead]:
    """Occupied windows per port for a station-local date."""
    items = await service.list_port_conflicts(station_id, day, port_id)
    return [PortConflictsRead.model_validate(item) for item in items]
