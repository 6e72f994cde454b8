"""HTTP-level tests for the reservation routers over in-memory repositories."""

from __future__ import annotations

from collections.abc import AsyncIterator
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

import reservations.modules.availability.service as availability_service_module
import reservations.modules.booking.service as booking_service_module
import reservations.modules.refunds.service as refund_service_module
from fakes import FakeBookingRepository, FakeRefundRepository, FakeStationRepository, FakeStore, local
from reservations.core.config import get_settings
from reservations.core.rate_limit import InMemoryCancellationThrottle
from reservations.main import app
from reservations.modules.availability.service import AvailabilityService, get_availability_service
from reservations.modules.booking.service import ReservationTransactionManager, get_reservation_manager
from reservations.modules.orders.matching import build_order_matcher
from reservations.modules.refunds.service import CancellationOrchestrator, get_cancellation_orchestrator

NOW = local(2026, 10, 19, 8, 0)
API = get_settings().api_prefix


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest_asyncio.fixture
async def client(store: FakeStore, monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[httpx.AsyncClient]:
    for module in (booking_service_module, refund_service_module, availability_service_module):
        monkeypatch.setattr(module, "utc_now", lambda: NOW)

    bookings = FakeBookingRepository(store)
    stations = FakeStationRepository(store)
    unit_of_work = store.unit_of_work()
    manager = ReservationTransactionManager(bookings, stations, unit_of_work=unit_of_work)
    orchestrator = CancellationOrchestrator(
        manager=manager,
        booking_repository=bookings,
        refund_repository=FakeRefundRepository(store),
        throttle=InMemoryCancellationThrottle(now_provider=lambda: NOW.timestamp()),
        order_matcher=build_order_matcher(get_settings()),
        unit_of_work=unit_of_work,
    )
    app.dependency_overrides[get_reservation_manager] = lambda: manager
    app.dependency_overrides[get_cancellation_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_availability_service] = lambda: AvailabilityService(stations, bookings)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    app.dependency_overrides.clear()


def _booking_payload(station, port, start_time: str = "10:00") -> dict:
    return {
        "station_id": str(station.id),
        "port_id": str(port.id),
        "date": "2026-10-20",
        "start_time": start_time,
        "duration_minutes": 60,
        "customer": {"name": "Sita Rai", "phone_number": "9800000001"},
    }


@pytest.mark.asyncio
async def test_create_then_conflict_over_http(store, client) -> None:
    station, port = store.add_station()
    headers = {"X-User-Id": str(uuid4())}

    created = await client.post(f"{API}/bookings", json=_booking_payload(station, port), headers=headers)
    conflict = await client.post(f"{API}/bookings", json=_booking_payload(station, port, "10:30"), headers=headers)

    assert created.status_code == 201, created.text
    assert Decimal(created.json()["total_amount"]) == Decimal("755.00")
    assert conflict.status_code == 409
    error = conflict.json()["error"]
    assert error["code"] == "conflict"
    assert error["details"]["conflict_window"] == "10:00-11:00"


@pytest.mark.asyncio
async def test_requests_without_requester_header_are_rejected(store, client) -> None:
    station, port = store.add_station()

    response = await client.post(f"{API}/bookings", json=_booking_payload(station, port))

    assert response.status_code == 422
    assert store.bookings == {}


@pytest.mark.asyncio
async def test_other_user_cannot_read_booking(store, client) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 20, 10, 0), 60)

    own = await client.get(f"{API}/bookings/{booking.id}", headers={"X-User-Id": str(booking.user_id)})
    foreign = await client.get(f"{API}/bookings/{booking.id}", headers={"X-User-Id": str(uuid4())})

    assert own.status_code == 200
    assert foreign.status_code == 404
    assert foreign.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_availability_endpoint_lists_ports(store, client) -> None:
    station, port = store.add_station()

    response = await client.get(f"{API}/stations/{station.id}/availability", params={"date": "2026-10-20"})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_open"] is True
    assert body["ports"][0]["port_id"] == str(port.id)
    assert body["ports"][0]["total_count"] == 192


@pytest.mark.asyncio
async def test_cancel_with_refund_and_lookup_over_http(store, client) -> None:
    _, port = store.add_station()
    booking = store.add_booking(
        port,
        local(2026, 10, 21, 10, 0),
        60,
        total_amount=Decimal("1000.00"),
        platform_fee=Decimal("50.00"),
    )
    headers = {"X-User-Id": str(booking.user_id), "X-Forwarded-For": "198.51.100.4, 10.0.0.1"}

    preview = await client.get(f"{API}/bookings/{booking.id}/refund-preview", headers=headers)
    cancelled = await client.post(f"{API}/bookings/{booking.id}/cancel", json={"reason": "Plans changed"}, headers=headers)

    assert preview.status_code == 200, preview.text
    assert preview.json()["calculation"]["refund_percentage"] == 100
    assert cancelled.status_code == 200, cancelled.text
    body = cancelled.json()
    assert body["booking"]["status"] == "cancelled"
    assert Decimal(body["refund"]["final_refund_amount"]) == Decimal("902.50")
    [refund] = store.refunds.values()
    assert refund.security_validation["ip_address"] == "198.51.100.4"

    status = await client.get(f"{API}/refunds/{body['refund']['refund_reference']}", headers=headers)
    listing = await client.get(f"{API}/refunds", headers=headers)

    assert status.status_code == 200
    assert listing.json()["total"] == 1
    assert listing.json()["has_more"] is False


@pytest.mark.asyncio
async def test_tampered_amount_is_forbidden(store, client) -> None:
    _, port = store.add_station()
    booking = store.add_booking(port, local(2026, 10, 21, 10, 0), 60, total_amount=Decimal("1000.00"))

    response = await client.post(
        f"{API}/bookings/{booking.id}/cancel",
        json={"requested_amount": "99999"},
        headers={"X-User-Id": str(booking.user_id)},
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "security_violation"


@pytest.mark.asyncio
async def test_list_my_bookings_over_http(store, client) -> None:
    _, port = store.add_station()
    user_id = uuid4()
    booking = store.add_booking(port, local(2026, 10, 20, 10, 0), 60, user_id=user_id)
    store.add_booking(port, local(2026, 10, 20, 12, 0), 60)

    response = await client.get(f"{API}/bookings", headers={"X-User-Id": str(user_id)})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == str(booking.id)


@pytest.mark.asyncio
async def test_check_slot_over_http(store, client) -> None:
    station, port = store.add_station()
    store.add_booking(port, local(2026, 10, 20, 10, 0), 60)
    headers = {"X-User-Id": str(uuid4())}

    busy = await client.post(f"{API}/bookings/check-slot", json=_booking_payload(station, port, "10:30"), headers=headers)
    free = await client.post(f"{API}/bookings/check-slot", json=_booking_payload(station, port, "13:00"), headers=headers)

    assert busy.status_code == 200, busy.text
    assert busy.json()["is_available"] is False
    assert busy.json()["conflicts"][0]["local_window"] == "10:00-11:00"
    assert free.json()["is_available"] is True
    assert Decimal(free.json()["quote"]["total_amount"]) == Decimal("755.00")
    assert len(store.bookings) == 1


@pytest.mark.asyncio
async def test_slot_counts_over_http(store, client) -> None:
    station, port = store.add_station()

    response = await client.get(
        f"{API}/stations/{station.id}/slot-counts",
        params={"dates": "2026-10-20, 2026-10-21"},
    )
    malformed = await client.get(f"{API}/stations/{station.id}/slot-counts", params={"dates": "20-10-2026"})

    assert response.status_code == 200, response.text
    days = response.json()
    assert [item["date"] for item in days] == ["2026-10-20", "2026-10-21"]
    assert days[0]["ports"][0]["port_id"] == str(port.id)
    assert days[0]["ports"][0]["available_count"] == 192
    assert malformed.status_code == 422
