"""Read-only availability queries."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.config import get_settings
from reservations.core.database import get_db_session
from reservations.core.enums import BookingStatusEnum
from reservations.modules.availability.slots import (
    DayWindow,
    Slot,
    SlotGenerator,
    local_instant,
    resolve_day_window,
)
from reservations.modules.booking.pricing import duration_options
from reservations.modules.booking.repository import BookingRepository
from reservations.modules.stations.models import ChargingPort, ChargingStation
from reservations.modules.stations.repository import StationRepository
from reservations.shared.exceptions import NotFoundException, ValidationException
from reservations.shared.utils import get_zone, utc_now

settings = get_settings()

MAX_SLOT_COUNT_DAYS = 14


@dataclass(slots=True)
class PortAvailability:
    port_id: UUID
    port_number: str
    connector_type: str
    power_output_kw: Decimal
    price_per_unit: Decimal
    slots: list[Slot]
    available_count: int
    bookable_count: int
    total_count: int


@dataclass(slots=True)
class StationAvailability:
    station_id: UUID
    date: date
    is_open: bool
    operating_window: str | None
    ports: list[PortAvailability] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PortSlotCount:
    port_id: UUID
    port_number: str
    available_count: int
    bookable_count: int


@dataclass(slots=True)
class DailySlotCounts:
    date: date
    is_open: bool
    ports: list[PortSlotCount] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class BookedWindow:
    booking_id: UUID
    start_at: datetime
    end_at: datetime
    local_window: str
    status: BookingStatusEnum


@dataclass(slots=True)
class PortConflicts:
    port_id: UUID
    port_number: str
    windows: list[BookedWindow]


class AvailabilityService:
    """Answers "which slots are free" from the calendar and existing bookings."""

    def __init__(self, station_repository: StationRepository, booking_repository: BookingRepository) -> None:
        self.station_repository = station_repository
        self.booking_repository = booking_repository

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=settings.booking_buffer_minutes)

    async def _load(
        self,
        station_id: UUID,
        port_id: UUID | None,
    ) -> tuple[ChargingStation, list[ChargingPort]]:
        station = await self.station_repository.get_station_by_id(station_id)
        if station is None or not station.is_active:
            raise NotFoundException("Charging station not found")
        ports = list(station.ports)
        if port_id is not None:
            ports = [port for port in ports if port.id == port_id]
            if not ports:
                raise NotFoundException("Charging port not found")
        return station, ports

    async def _bookings_by_port(
        self,
        ports: list[ChargingPort],
        day: date,
        window: DayWindow,
        *,
        margin: timedelta = timedelta(0),
    ) -> dict[UUID, list]:
        zone = get_zone(settings.station_timezone)
        range_start = local_instant(day, window.open_minute, zone) - margin
        range_end = local_instant(day, window.close_minute, zone) + margin
        rows = await self.booking_repository.list_occupying_bookings(
            [port.id for port in ports],
            range_start,
            range_end,
        )
        grouped: dict[UUID, list] = defaultdict(list)
        for row in rows:
            grouped[row.port_id].append(row)
        return grouped

    def _port_listing(
        self,
        port: ChargingPort,
        day: date,
        window: DayWindow,
        bookings: list,
        now: datetime,
    ) -> PortAvailability:
        generator = SlotGenerator(
            day=day,
            window=window,
            zone=get_zone(settings.station_timezone),
            now=now,
            step_minutes=settings.slot_step_minutes,
            # A slot at or inside now + buffer is rejected at booking time.
            lead_minutes=max(settings.slot_lead_minutes, settings.booking_buffer_minutes),
            bookings=bookings,
            pricing=duration_options(
                port.power_output_kw,
                port.price_per_unit,
                settings.slot_duration_options,
                settings.platform_fee,
            ),
            buffer=self.buffer,
            min_duration_minutes=settings.booking_min_duration_minutes,
        )
        slots = list(generator)
        return PortAvailability(
            port_id=port.id,
            port_number=port.port_number,
            connector_type=port.connector_type,
            power_output_kw=port.power_output_kw,
            price_per_unit=port.price_per_unit,
            slots=slots,
            available_count=sum(1 for slot in slots if slot.is_available),
            bookable_count=sum(1 for slot in slots if slot.is_bookable),
            total_count=len(slots),
        )

    async def _day_listings(
        self,
        station: ChargingStation,
        ports: list[ChargingPort],
        day: date,
        now: datetime,
    ) -> tuple[DayWindow | None, list[PortAvailability]]:
        window = resolve_day_window(station.operating_hours, day)
        if window is None:
            return None, []
        ports = [port for port in ports if port.is_operational]
        # Bookings just outside the window still block nearby starts through the buffer.
        bookings = await self._bookings_by_port(ports, day, window, margin=2 * self.buffer)
        return window, [self._port_listing(port, day, window, bookings.get(port.id, []), now) for port in ports]

    async def get_availability(
        self,
        station_id: UUID,
        day: date,
        port_id: UUID | None = None,
    ) -> StationAvailability:
        """Per-port slot listing for the station-local day."""
        station, ports = await self._load(station_id, port_id)
        window, listings = await self._day_listings(station, ports, day, utc_now())
        if window is None:
            return StationAvailability(station_id=station.id, date=day, is_open=False, operating_window=None)
        return StationAvailability(
            station_id=station.id,
            date=day,
            is_open=True,
            operating_window=window.label,
            ports=listings,
        )

    async def get_slot_counts(self, station_id: UUID, days: Sequence[date]) -> list[DailySlotCounts]:
        """Available and bookable slot counts per port for several days, for calendar views."""
        unique_days = sorted(set(days))
        if not unique_days:
            raise ValidationException("At least one date is required")
        if len(unique_days) > MAX_SLOT_COUNT_DAYS:
            raise ValidationException(
                f"At most {MAX_SLOT_COUNT_DAYS} dates can be requested at once",
                details={"requested": len(unique_days)},
            )

        station, ports = await self._load(station_id, None)
        now = utc_now()
        result = []
        for day in unique_days:
            window, listings = await self._day_listings(station, ports, day, now)
            result.append(
                DailySlotCounts(
                    date=day,
                    is_open=window is not None,
                    ports=[
                        PortSlotCount(
                            port_id=item.port_id,
                            port_number=item.port_number,
                            available_count=item.available_count,
                            bookable_count=item.bookable_count,
                        )
                        for item in listings
                    ],
                ),
            )
        return result

    async def list_port_conflicts(
        self,
        station_id: UUID,
        day: date,
        port_id: UUID | None = None,
    ) -> list[PortConflicts]:
        """Booked windows per port for the day, for clients rendering a timeline."""
        station, ports = await self._load(station_id, port_id)
        window = resolve_day_window(station.operating_hours, day)
        if window is None:
            return [PortConflicts(port_id=port.id, port_number=port.port_number, windows=[]) for port in ports]

        bookings = await self._bookings_by_port(ports, day, window)
        zone = get_zone(settings.station_timezone)
        result = []
        for port in ports:
            windows = [
                BookedWindow(
                    booking_id=row.id,
                    start_at=row.start_at,
                    end_at=row.end_at,
                    local_window=f"{_clock(row.start_at, zone)}-{_clock(row.end_at, zone)}",
                    status=row.status,
                )
                for row in sorted(bookings.get(port.id, []), key=lambda item: item.start_at)
            ]
            result.append(PortConflicts(port_id=port.id, port_number=port.port_number, windows=windows))
        return result


def _clock(value: datetime, zone: ZoneInfo) -> str:
    return value.astimezone(zone).strftime("%H:%M")


async def get_availability_service(session: AsyncSession = Depends(get_db_session)) -> AvailabilityService:
    """Dependency provider for availability service."""
    return AvailabilityService(
        station_repository=StationRepository(session),
        booking_repository=BookingRepository(session),
    )
