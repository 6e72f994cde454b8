from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

import reservations.modules.booking.service as booking_service_module
from fakes import FakeBookingRepository, FakeStationRepository, FakeStore, local
from reservations.core.enums import BookingStatusEnum, PaymentStatusEnum, PortStatusEnum
from reservations.modules.booking.schemas import BookingCreate, SlotRequest
from reservations.modules.booking.service import ReservationTransactionManager
from reservations.shared.exceptions import (
    ConflictException,
    NotFoundException,
    PolicyException,
    ValidationException,
)

NOW = local(2026, 10, 19, 8, 0)
TOMORROW = date(2026, 10, 20)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def manager(store: FakeStore, monkeypatch: pytest.MonkeyPatch) -> ReservationTransactionManager:
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: NOW)
    return ReservationTransactionManager(
        booking_repository=FakeBookingRepository(store),
        station_repository=FakeStationRepository(store),
        unit_of_work=store.unit_of_work(),
    )


def make_request(station, port, start_time: str, duration_minutes: int = 60, day: date = TOMORROW) -> BookingCreate:
    return BookingCreate(
        station_id=station.id,
        port_id=port.id,
        date=day,
        start_time=start_time,
        duration_minutes=duration_minutes,
        customer={"name": "Sita Rai", "phone_number": "9800000001"},
        vehicle_number="BA 2 PA 1234",
    )


@pytest.mark.asyncio
async def test_create_booking_prices_slot_and_occupies_port(store, manager) -> None:
    station, port = store.add_station()
    user_id = uuid4()

    booking = await manager.create_booking(make_request(station, port, "10:00"), user_id)

    assert booking.status == BookingStatusEnum.CONFIRMED
    assert booking.payment_status == PaymentStatusEnum.PAID
    assert booking.start_at == local(2026, 10, 20, 10, 0)
    assert booking.end_at == local(2026, 10, 20, 11, 0)
    assert booking.estimated_units == Decimal("50.000")
    assert booking.base_cost == Decimal("750.00")
    assert booking.merchant_amount == Decimal("750.00")
    assert booking.platform_fee == Decimal("5.00")
    assert booking.total_amount == Decimal("755.00")
    assert booking.booking_reference.startswith("CHG")
    assert booking.customer_phone == "9800000001"
    assert port.current_status == PortStatusEnum.OCCUPIED
    assert [event["event_type"] for event in store.outbox] == ["booking.confirmed"]
    assert store.audit_logs[0]["action"] == "booking.created"


@pytest.mark.asyncio
async def test_overlapping_request_names_existing_window(store, manager) -> None:
    station, port = store.add_station()
    store.add_booking(port, local(2026, 10, 20, 14, 0), 60)

    with pytest.raises(ConflictException) as exc_info:
        await manager.create_booking(make_request(station, port, "14:30"), uuid4())

    assert "14:00-15:00" in exc_info.value.message
    assert exc_info.value.details["conflict_window"] == "14:00-15:00"
    assert store.transactions == 0


@pytest.mark.asyncio
async def test_buffer_keeps_handover_gap_between_bookings(store, manager) -> None:
    station, port = store.add_station()
    store.add_booking(port, local(2026, 10, 20, 10, 0), 60)

    with pytest.raises(ConflictException):
        await manager.create_booking(make_request(station, port, "11:05"), uuid4())

    booking = await manager.create_booking(make_request(station, port, "11:10"), uuid4())
    assert booking.start_at == local(2026, 10, 20, 11, 10)


@pytest.mark.asyncio
async def test_other_port_is_not_affected_by_booking(store, manager) -> None:
    station, port = store.add_station()
    other_port = store.add_port(station, port_number="P2")
    store.add_booking(port, local(2026, 10, 20, 10, 0), 60)

    booking = await manager.create_booking(make_request(station, other_port, "10:00"), uuid4())

    assert booking.port_id == other_port.id


@pytest.mark.asyncio
async def test_concurrent_overlapping_requests_admit_exactly_one(store, manager) -> None:
    station, port = store.add_station()
    requests = [make_request(station, port, f"10:{minute:02d}") for minute in range(0, 40, 5)]

    results = await asyncio.gather(
        *(manager.create_booking(request, uuid4()) for request in requests),
        return_exceptions=True,
    )

    created = [item for item in results if not isinstance(item, Exception)]
    conflicts = [item for item in results if isinstance(item, ConflictException)]
    assert len(created) == 1
    assert len(conflicts) == len(requests) - 1
    assert len(store.bookings) == 1


@pytest.mark.asyncio
async def test_concurrent_disjoint_requests_all_succeed(store, manager) -> None:
    station, port = store.add_station()

    first, second = await asyncio.gather(
        manager.create_booking(make_request(station, port, "09:00"), uuid4()),
        manager.create_booking(make_request(station, port, "12:00"), uuid4()),
    )

    assert first.port_id == second.port_id == port.id
    assert len(store.bookings) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("duration_minutes", [15, 29, 481])
async def test_duration_outside_bounds_is_rejected(store, manager, duration_minutes: int) -> None:
    station, port = store.add_station()

    with pytest.raises(ValidationException):
        await manager.create_booking(make_request(station, port, "10:00", duration_minutes), uuid4())


@pytest.mark.asyncio
async def test_start_outside_operating_hours_is_rejected(store, manager) -> None:
    station, port = store.add_station()

    with pytest.raises(ValidationException, match="operating hours"):
        await manager.create_booking(make_request(station, port, "05:30"), uuid4())


@pytest.mark.asyncio
async def test_booking_running_past_close_is_rejected(store, manager) -> None:
    station, port = store.add_station()

    with pytest.raises(ValidationException) as exc_info:
        await manager.create_booking(make_request(station, port, "21:30", 60), uuid4())

    assert exc_info.value.details["max_duration_minutes"] == 30


@pytest.mark.asyncio
async def test_closed_day_is_rejected(store, manager) -> None:
    hours = {"tuesday": {"open": None, "close": None, "is_24_hours": False}}
    station, port = store.add_station(operating_hours=hours)

    with pytest.raises(ValidationException, match="closed"):
        await manager.create_booking(make_request(station, port, "10:00"), uuid4())


@pytest.mark.asyncio
async def test_overnight_station_accepts_booking_after_midnight(store, manager) -> None:
    hours = {"tuesday": {"open": "18:00", "close": "02:00", "is_24_hours": False}}
    station, port = store.add_station(operating_hours=hours)

    booking = await manager.create_booking(make_request(station, port, "23:30", 120), uuid4())

    assert booking.end_at == local(2026, 10, 21, 1, 30)


@pytest.mark.asyncio
async def test_start_too_soon_is_rejected(store, manager) -> None:
    station, port = store.add_station()

    with pytest.raises(ValidationException, match="minutes from now"):
        await manager.create_booking(make_request(station, port, "08:05", day=date(2026, 10, 19)), uuid4())


@pytest.mark.asyncio
async def test_port_out_of_service_is_rejected(store, manager) -> None:
    station, port = store.add_station(current_status=PortStatusEnum.MAINTENANCE)

    with pytest.raises(ValidationException, match="out of service"):
        await manager.create_booking(make_request(station, port, "10:00"), uuid4())


@pytest.mark.asyncio
async def test_unknown_port_is_not_found(store, manager) -> None:
    station, _ = store.add_station()
    _, foreign_port = store.add_station()

    with pytest.raises(NotFoundException):
        await manager.create_booking(make_request(station, foreign_port, "10:00"), uuid4())


@pytest.mark.asyncio
async def test_failed_write_leaves_no_partial_booking(store, manager) -> None:
    station, port = store.add_station()
    store.fail_audit = True

    with pytest.raises(RuntimeError):
        await manager.create_booking(make_request(station, port, "10:00"), uuid4())

    assert store.bookings == {}
    assert port.current_status == PortStatusEnum.AVAILABLE
    assert store.outbox == []
    assert store.rollbacks == 1


@pytest.mark.asyncio
async def test_extension_blocked_by_next_booking_inside_buffer(store, manager) -> None:
    station, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 20, 14, 0), 60)
    store.add_booking(port, local(2026, 10, 20, 15, 15), 60)

    with pytest.raises(ConflictException):
        await manager.extend_booking(booking.id, 30, booking.user_id)

    assert booking.end_at == local(2026, 10, 20, 15, 0)


@pytest.mark.asyncio
async def test_extension_succeeds_and_charges_peak_rate(store, manager) -> None:
    station, port = store.add_station()
    booking = store.add_booking(
        port,
        local(2026, 10, 20, 14, 0),
        60,
        base_cost=Decimal("750.00"),
        merchant_amount=Decimal("750.00"),
        total_amount=Decimal("755.00"),
    )
    store.add_booking(port, local(2026, 10, 20, 15, 45), 60)

    extended = await manager.extend_booking(booking.id, 30, booking.user_id)

    assert extended.end_at == local(2026, 10, 20, 15, 30)
    assert extended.duration_minutes == 90
    assert extended.total_amount == Decimal("855.00")
    assert extended.base_cost == Decimal("830.00")
    assert extended.taxes == Decimal("18.00")
    assert extended.service_charges == Decimal("2.00")
    assert store.outbox[-1]["event_type"] == "booking.extended"


@pytest.mark.asyncio
async def test_extension_uses_station_off_peak_rate_for_evening_start(store, manager) -> None:
    station, port = store.add_station()
    station.off_peak_hourly_rate = Decimal("120")
    booking = store.add_booking(port, local(2026, 10, 20, 20, 0), 60, total_amount=Decimal("755.00"))

    extended = await manager.extend_booking(booking.id, 60, booking.user_id)

    assert extended.total_amount == Decimal("875.00")


@pytest.mark.asyncio
async def test_extension_beyond_maximum_duration_is_rejected(store, manager) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 20, 10, 0), 460)

    with pytest.raises(ValidationException):
        await manager.extend_booking(booking.id, 30, booking.user_id)


@pytest.mark.asyncio
async def test_cancelled_booking_cannot_be_extended(store, manager) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 20, 10, 0), 60, status=BookingStatusEnum.CANCELLED)

    with pytest.raises(PolicyException):
        await manager.extend_booking(booking.id, 30, booking.user_id)


@pytest.mark.asyncio
async def test_extension_by_other_user_is_not_found(store, manager) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 20, 10, 0), 60)

    with pytest.raises(NotFoundException):
        await manager.extend_booking(booking.id, 30, uuid4())


@pytest.mark.asyncio
async def test_complete_early_floors_charged_minutes_and_credits_rest(store, manager, monkeypatch) -> None:
    _, port = store.add_station(current_status=PortStatusEnum.OCCUPIED)
    start_at = local(2026, 10, 19, 21, 0)
    booking = store.add_booking(
        port,
        start_at,
        120,
        status=BookingStatusEnum.ACTIVE,
        base_cost=Decimal("1500.00"),
        merchant_amount=Decimal("1500.00"),
        total_amount=Decimal("1505.00"),
        actual_start_at=start_at,
    )
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: start_at + timedelta(minutes=10))

    completed = await manager.complete_booking_early(booking.id, booking.user_id)

    assert completed.status == BookingStatusEnum.COMPLETED
    assert completed.charged_minutes == 30
    assert completed.usage_refund_amount == Decimal("225.00")
    assert completed.final_amount == Decimal("1280.00")
    assert completed.payment_status == PaymentStatusEnum.PARTIAL_REFUND
    assert completed.actual_end_at == start_at + timedelta(minutes=10)
    assert port.current_status == PortStatusEnum.AVAILABLE


@pytest.mark.asyncio
async def test_complete_early_credit_never_exceeds_paid_amount(store, manager, monkeypatch) -> None:
    _, port = store.add_station()
    start_at = local(2026, 10, 19, 21, 0)
    booking = store.add_booking(port, start_at, 240, total_amount=Decimal("105.00"))
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: start_at + timedelta(minutes=5))

    completed = await manager.complete_booking_early(booking.id, booking.user_id)

    assert completed.usage_refund_amount == Decimal("100.00")
    assert completed.final_amount == Decimal("5.00")


@pytest.mark.asyncio
async def test_complete_keeps_port_occupied_while_other_booking_holds_it(store, manager, monkeypatch) -> None:
    _, port = store.add_station(current_status=PortStatusEnum.OCCUPIED)
    start_at = local(2026, 10, 19, 21, 0)
    booking = store.add_booking(port, start_at, 60, status=BookingStatusEnum.ACTIVE)
    store.add_booking(port, local(2026, 10, 20, 9, 0), 60)
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: start_at + timedelta(minutes=45))

    await manager.complete_booking_early(booking.id, booking.user_id)

    assert port.current_status == PortStatusEnum.OCCUPIED


@pytest.mark.asyncio
async def test_check_in_before_window_is_rejected(store, manager) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 19, 9, 0), 60)

    with pytest.raises(PolicyException, match="Check-in opens"):
        await manager.check_in(booking.id, booking.user_id)


@pytest.mark.asyncio
async def test_check_in_inside_window_activates_booking(store, manager) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 19, 8, 10), 60)

    checked_in = await manager.check_in(booking.id, booking.user_id)

    assert checked_in.status == BookingStatusEnum.ACTIVE
    assert checked_in.actual_start_at == NOW
    assert port.current_status == PortStatusEnum.OCCUPIED
    assert store.outbox[-1]["event_type"] == "booking.checked_in"


@pytest.mark.asyncio
async def test_expire_overdue_bookings_releases_port(store, manager) -> None:
    _, port = store.add_station(current_status=PortStatusEnum.OCCUPIED)
    overdue = store.add_booking(port, local(2026, 10, 19, 7, 30), 60)
    store.add_booking(port, local(2026, 10, 19, 6, 0), 30, status=BookingStatusEnum.CANCELLED)
    store.add_booking(
        port,
        local(2026, 10, 19, 6, 30),
        30,
        actual_start_at=local(2026, 10, 19, 6, 30),
        status=BookingStatusEnum.COMPLETED,
    )

    expired = await manager.expire_overdue_bookings()

    assert expired == 1
    assert overdue.status == BookingStatusEnum.EXPIRED
    assert overdue.expired_at == NOW
    assert port.current_status == PortStatusEnum.AVAILABLE
    assert store.outbox[-1]["event_type"] == "booking.expired"


@pytest.mark.asyncio
async def test_expire_overdue_skips_bookings_inside_grace(store, manager) -> None:
    _, port = store.add_station(current_status=PortStatusEnum.OCCUPIED)
    booking = store.add_booking(port, local(2026, 10, 19, 7, 50), 60)

    assert await manager.expire_overdue_bookings() == 0
    assert booking.status == BookingStatusEnum.CONFIRMED
    assert port.current_status == PortStatusEnum.OCCUPIED


@pytest.mark.asyncio
async def test_check_slot_reports_conflicts_without_booking(store, manager) -> None:
    station, port = store.add_station()
    existing = store.add_booking(port, local(2026, 10, 20, 14, 0), 60)
    request = SlotRequest(
        station_id=station.id,
        port_id=port.id,
        date=TOMORROW,
        start_time="14:30",
        duration_minutes=60,
    )

    result = await manager.check_slot(request)

    assert result.is_available is False
    assert result.conflicts[0]["booking_id"] == str(existing.id)
    assert result.conflicts[0]["local_window"] == "14:00-15:00"
    assert len(store.bookings) == 1
    assert store.transactions == 0


@pytest.mark.asyncio
async def test_check_slot_quotes_free_interval(store, manager) -> None:
    station, port = store.add_station()

    result = await manager.check_slot(make_request(station, port, "10:00"))

    assert result.is_available is True
    assert result.conflicts == []
    assert result.start_at == local(2026, 10, 20, 10, 0)
    assert result.quote.total_amount == Decimal("755.00")
    assert port.current_status == PortStatusEnum.AVAILABLE


@pytest.mark.asyncio
async def test_check_slot_applies_booking_validation(store, manager) -> None:
    station, port = store.add_station()

    with pytest.raises(ValidationException, match="minutes from now"):
        await manager.check_slot(make_request(station, port, "08:05", day=date(2026, 10, 19)))
    with pytest.raises(ValidationException, match="duration"):
        await manager.check_slot(make_request(station, port, "10:00", 15))


@pytest.mark.asyncio
async def test_list_user_bookings_returns_own_bookings_latest_first(store, manager) -> None:
    _, port = store.add_station()
    user_id = uuid4()
    early = store.add_booking(port, local(2026, 10, 20, 9, 0), 60, user_id=user_id)
    late = store.add_booking(port, local(2026, 10, 21, 9, 0), 60, user_id=user_id)
    cancelled = store.add_booking(
        port,
        local(2026, 10, 22, 9, 0),
        60,
        user_id=user_id,
        status=BookingStatusEnum.CANCELLED,
    )
    store.add_booking(port, local(2026, 10, 20, 12, 0), 60)

    items, total = await manager.list_user_bookings(user_id)
    confirmed, confirmed_total = await manager.list_user_bookings(user_id, status=BookingStatusEnum.CONFIRMED)
    page, _ = await manager.list_user_bookings(user_id, limit=1, offset=1)

    assert [item.id for item in items] == [cancelled.id, late.id, early.id]
    assert total == 3
    assert [item.id for item in confirmed] == [late.id, early.id]
    assert confirmed_total == 2
    assert [item.id for item in page] == [late.id]
