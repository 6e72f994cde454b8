"""Slots the availability listing marks bookable are accepted by create_booking."""

from __future__ import annotations

from datetime import date, timedelta
from uuid import uuid4

import pytest

import reservations.modules.availability.service as availability_service_module
import reservations.modules.booking.service as booking_service_module
from fakes import FakeBookingRepository, FakeStationRepository, FakeStore, local
from reservations.modules.availability.service import AvailabilityService
from reservations.modules.booking.schemas import BookingCreate
from reservations.modules.booking.service import ReservationTransactionManager
from reservations.shared.exceptions import ConflictException, ValidationException

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
WEDNESDAY = date(2026, 10, 21)
OVERNIGHT_22_02 = {
    day: {"open": "22:00", "close": "02:00", "is_24_hours": False}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch):
    """Pin both services to one instant; returns a setter."""

    def set_now(instant):
        monkeypatch.setattr(booking_service_module, "utc_now", lambda: instant)
        monkeypatch.setattr(availability_service_module, "utc_now", lambda: instant)

    set_now(local(2026, 10, 19, 8, 0))
    return set_now


@pytest.fixture
def services(store: FakeStore, clock) -> tuple[AvailabilityService, ReservationTransactionManager]:
    bookings = FakeBookingRepository(store)
    stations = FakeStationRepository(store)
    return (
        AvailabilityService(station_repository=stations, booking_repository=bookings),
        ReservationTransactionManager(bookings, stations, unit_of_work=store.unit_of_work()),
    )


def request_for(station, port, day: date, start_time: str, duration_minutes: int = 60) -> BookingCreate:
    return BookingCreate(
        station_id=station.id,
        port_id=port.id,
        date=day,
        start_time=start_time,
        duration_minutes=duration_minutes,
    )


@pytest.mark.asyncio
async def test_after_midnight_slot_of_overnight_window_can_be_booked(store, services) -> None:
    availability, manager = services
    station, port = store.add_station(operating_hours=OVERNIGHT_22_02)

    listing = await availability.get_availability(station.id, TUESDAY)
    slot = next(item for item in listing.ports[0].slots if item.local_time == "00:30")

    assert slot.is_bookable is True
    assert slot.local_date == WEDNESDAY
    assert slot.start_at == local(2026, 10, 21, 0, 30)

    booking = await manager.create_booking(request_for(station, port, slot.local_date, slot.local_time), uuid4())

    assert booking.start_at == slot.start_at
    assert booking.end_at == local(2026, 10, 21, 1, 30)


@pytest.mark.asyncio
async def test_overnight_tail_still_enforces_closing_time(store, services) -> None:
    _, manager = services
    station, port = store.add_station(operating_hours=OVERNIGHT_22_02)

    with pytest.raises(ValidationException, match="beyond operating hours"):
        await manager.create_booking(request_for(station, port, WEDNESDAY, "01:30", 60), uuid4())
    with pytest.raises(ValidationException, match="within operating hours"):
        await manager.create_booking(request_for(station, port, WEDNESDAY, "03:00"), uuid4())


@pytest.mark.asyncio
async def test_overnight_tail_follows_previous_day_when_today_is_closed(store, services) -> None:
    _, manager = services
    hours = {"tuesday": {"open": "20:00", "close": "03:00"}, "wednesday": {"open": None, "close": None}}
    station, port = store.add_station(operating_hours=hours)

    booking = await manager.create_booking(request_for(station, port, WEDNESDAY, "01:00"), uuid4())

    assert booking.start_at == local(2026, 10, 21, 1, 0)
    with pytest.raises(ValidationException, match="closed"):
        await manager.create_booking(request_for(station, port, WEDNESDAY, "10:00"), uuid4())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "now",
    [
        local(2026, 10, 19, 8, 0),
        local(2026, 10, 19, 8, 0) + timedelta(milliseconds=400),
        local(2026, 10, 19, 8, 4) + timedelta(seconds=59, microseconds=999_999),
    ],
)
async def test_first_slot_of_today_is_bookable(store, services, clock, now) -> None:
    clock(now)
    availability, manager = services
    station, port = store.add_station()

    listing = await availability.get_availability(station.id, MONDAY)
    first = listing.ports[0].slots[0]

    assert first.local_time == "08:10"
    assert first.is_bookable is True
    booking = await manager.create_booking(request_for(station, port, MONDAY, first.local_time), uuid4())
    assert booking.start_at == first.start_at
    with pytest.raises(ValidationException, match="minutes from now"):
        await manager.create_booking(request_for(station, port, MONDAY, "08:05"), uuid4())


@pytest.mark.asyncio
async def test_bookable_hint_accounts_for_handover_gap(store, services) -> None:
    availability, manager = services
    station, port = store.add_station()
    store.add_booking(port, local(2026, 10, 20, 10, 0), 60)

    listing = await availability.get_availability(station.id, TUESDAY)
    slots = {item.local_time: item for item in listing.ports[0].slots}

    assert slots["11:05"].is_available is True
    assert slots["11:05"].is_bookable is False
    assert slots["11:10"].is_bookable is True
    assert slots["09:20"].is_bookable is True
    assert slots["09:25"].is_bookable is False
    assert slots["21:30"].is_bookable is True
    assert slots["21:35"].is_bookable is False
    assert listing.ports[0].available_count == 180
    assert listing.ports[0].bookable_count == 166

    with pytest.raises(ConflictException):
        await manager.create_booking(request_for(station, port, TUESDAY, "11:05", 30), uuid4())
    booking = await manager.create_booking(request_for(station, port, TUESDAY, "11:10", 30), uuid4())
    assert booking.start_at == slots["11:10"].start_at
