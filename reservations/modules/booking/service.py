"""Reservation business logic layer.

``ReservationTransactionManager`` is the only writer of booking and port
state. Creation and extension use a double check: a cheap overlap query on
the request session rejects obvious conflicts, then the same query runs again
inside the transaction after the port row is locked. The database exclusion
constraint backs both checks.
"""

from __future__ import annotations

import logging
import math
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.config import get_settings
from reservations.core.database import get_db_session
from reservations.core.enums import (
    CANCELLABLE_BOOKING_STATUSES,
    OCCUPYING_BOOKING_STATUSES,
    BookingStatusEnum,
    CancelledByEnum,
    PaymentStatusEnum,
    PortStatusEnum,
)
from reservations.core.metrics import BOOKING_CONFLICTS_TOTAL, BOOKINGS_CREATED_TOTAL
from reservations.modules.availability.slots import MINUTES_PER_DAY, local_instant, parse_clock, resolve_day_window
from reservations.modules.booking.models import Booking
from reservations.modules.booking.overlap import TimeInterval, conflict_search_range, find_overlapping
from reservations.modules.booking.pricing import (
    BookingPricing,
    extension_charge,
    hourly_rate_for,
    minutes_cost,
    quote_booking,
)
from reservations.modules.booking.repository import BookingRepository
from reservations.modules.booking.schemas import BookingCreate, SlotRequest
from reservations.modules.booking.unit_of_work import (
    ReservationUnitOfWork,
    UnitOfWorkFactory,
    reservation_transaction,
)
from reservations.modules.refunds.models import Refund
from reservations.modules.stations.models import ChargingPort, ChargingStation
from reservations.modules.stations.repository import StationRepository
from reservations.shared.exceptions import (
    ConflictException,
    NotFoundException,
    PolicyException,
    ValidationException,
)
from reservations.shared.utils import get_zone, money, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

UNAVAILABLE_PORT_STATUSES = (PortStatusEnum.MAINTENANCE, PortStatusEnum.OUT_OF_ORDER)


def generate_booking_reference(now: datetime) -> str:
    """Human-readable unique reference, e.g. ``CHG1760875200000A1F3``."""
    return f"CHG{int(now.timestamp() * 1000)}{secrets.token_hex(2).upper()}"


@dataclass(frozen=True, slots=True)
class CancellationPlan:
    """Cancellation outcome computed from the locked booking."""

    hours_before_start: Decimal
    refund_eligible: bool
    refund_fields: dict | None = None


CancellationPlanner = Callable[[Booking, datetime], CancellationPlan]


@dataclass(slots=True)
class SlotCheck:
    """Outcome of checking one interval without booking it."""

    station_id: UUID
    port_id: UUID
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    is_available: bool
    quote: BookingPricing
    conflicts: list[dict] = field(default_factory=list)


class ReservationTransactionManager:
    """Atomic create, extend, check-in, complete-early, cancel and expiry of bookings."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        station_repository: StationRepository,
        unit_of_work: UnitOfWorkFactory = reservation_transaction,
    ) -> None:
        self.booking_repository = booking_repository
        self.station_repository = station_repository
        self.unit_of_work = unit_of_work

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=settings.booking_buffer_minutes)

    @staticmethod
    def _local_clock(value: datetime) -> str:
        return value.astimezone(get_zone(settings.station_timezone)).strftime("%H:%M")

    @staticmethod
    def _ensure_owner(booking: Booking | None, requester_id: UUID | None) -> Booking:
        if booking is None or (requester_id is not None and booking.user_id != requester_id):
            raise NotFoundException("Booking not found")
        return booking

    @staticmethod
    def _ensure_port_operational(port: ChargingPort) -> None:
        if not port.is_operational or port.current_status in UNAVAILABLE_PORT_STATUSES:
            raise ValidationException(
                "This charging port is currently out of service",
                details={"port_id": str(port.id), "port_status": str(port.current_status)},
            )

    def _validate_duration(self, total_minutes: int) -> None:
        low = settings.booking_min_duration_minutes
        high = settings.booking_max_duration_minutes
        if not low <= total_minutes <= high:
            raise ValidationException(
                f"Booking duration must be between {low} and {high} minutes",
                details={"duration_minutes": total_minutes},
            )

    def _resolve_interval(self, station: ChargingStation, day: date, start_time: str, duration_minutes: int) -> TimeInterval:
        """Place the request on the station calendar; the end may run past midnight.

        A start before the day's opening may belong to the tail of the previous
        day's overnight window, in which case that window is used.
        """
        start_minute = parse_clock(start_time)
        anchor = day
        window = resolve_day_window(station.operating_hours, day)
        if window is None or start_minute < window.open_minute:
            previous_day = day - timedelta(days=1)
            previous = resolve_day_window(station.operating_hours, previous_day)
            if previous is not None and start_minute + MINUTES_PER_DAY < previous.close_minute:
                window, anchor, start_minute = previous, previous_day, start_minute + MINUTES_PER_DAY
        if window is None:
            raise ValidationException(
                f"Station is closed on {day.strftime('%A')}s",
                details={"date": day.isoformat()},
            )

        if not window.open_minute <= start_minute < window.close_minute:
            raise ValidationException(
                f"Booking start time must be within operating hours: {window.label}",
                details={"start_time": start_time},
            )
        if start_minute + duration_minutes > window.close_minute:
            remaining = window.close_minute - start_minute
            raise ValidationException(
                "Booking duration extends beyond operating hours. "
                f"Maximum duration from {start_time} is {remaining // 60}h {remaining % 60}m",
                details={"max_duration_minutes": remaining},
            )

        start_at = local_instant(anchor, start_minute, get_zone(settings.station_timezone))
        return TimeInterval(start_at, start_at + timedelta(minutes=duration_minutes))

    def _hourly_rate(self, station: ChargingStation | None, start_at: datetime) -> Decimal:
        peak = station.peak_hourly_rate if station and station.peak_hourly_rate is not None else None
        off_peak = station.off_peak_hourly_rate if station and station.off_peak_hourly_rate is not None else None
        return hourly_rate_for(
            start_at,
            get_zone(settings.station_timezone),
            peak_rate=peak if peak is not None else settings.peak_hourly_rate,
            off_peak_rate=off_peak if off_peak is not None else settings.off_peak_hourly_rate,
            peak_start_hour=settings.peak_start_hour,
            peak_end_hour=settings.peak_end_hour,
        )

    async def _find_conflicts(
        self,
        repository: BookingRepository,
        port_id: UUID,
        candidate: TimeInterval,
        *,
        exclude_booking_id: UUID | None = None,
        starts_at_or_after: datetime | None = None,
    ) -> list[Booking]:
        range_start, range_end = conflict_search_range(candidate, self.buffer)
        rows = await repository.find_port_bookings(
            port_id,
            range_start,
            range_end,
            exclude_booking_id=exclude_booking_id,
            starts_at_or_after=starts_at_or_after,
        )
        return find_overlapping(candidate, rows, self.buffer)

    def _conflict_error(self, conflicts: list[Booking], *, operation: str, phase: str) -> ConflictException:
        BOOKING_CONFLICTS_TOTAL.labels(operation=operation, phase=phase).inc()
        first = conflicts[0]
        window = f"{self._local_clock(first.start_at)}-{self._local_clock(first.end_at)}"
        logger.info("Booking %s rejected at %s: port %s busy %s", operation, phase, first.port_id, window)
        return ConflictException(
            f"Port is already booked from {window} (including a {settings.booking_buffer_minutes}-minute buffer)",
            details={
                "conflicting_booking_id": str(first.id),
                "conflict_start_at": first.start_at.isoformat(),
                "conflict_end_at": first.end_at.isoformat(),
                "conflict_window": window,
            },
        )

    async def _lock_booking(self, uow: ReservationUnitOfWork, booking_id: UUID) -> tuple[Booking, ChargingPort | None]:
        """Lock port then booking, the same order creation and extension use."""
        booking = await uow.bookings.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        port = await uow.stations.get_port(booking.station_id, booking.port_id, lock=True)
        booking = await uow.bookings.get_booking_by_id(booking_id, lock=True)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking, port

    async def _release_port_if_idle(
        self,
        uow: ReservationUnitOfWork,
        booking: Booking,
        port: ChargingPort | None,
    ) -> None:
        if port is None or port.current_status != PortStatusEnum.OCCUPIED:
            return
        remaining = await uow.bookings.count_occupying_bookings(booking.port_id, exclude_booking_id=booking.id)
        if remaining == 0:
            await uow.stations.set_port_status(port, PortStatusEnum.AVAILABLE)

    async def get_booking(self, booking_id: UUID, requester_id: UUID | None = None) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        return self._ensure_owner(booking, requester_id)

    async def list_user_bookings(
        self,
        user_id: UUID,
        *,
        status: BookingStatusEnum | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        return await self.booking_repository.list_user_bookings(user_id, status=status, limit=limit, offset=offset)

    async def _validate_request(
        self,
        request: SlotRequest,
    ) -> tuple[ChargingStation, ChargingPort, TimeInterval, datetime]:
        self._validate_duration(request.duration_minutes)

        station = await self.station_repository.get_station_by_id(request.station_id)
        if station is None or not station.is_active:
            raise NotFoundException("Charging station not found")
        port = next((item for item in station.ports if item.id == request.port_id), None)
        if port is None:
            raise NotFoundException("Charging port not found")
        self._ensure_port_operational(port)

        candidate = self._resolve_interval(station, request.date, request.start_time, request.duration_minutes)
        now = utc_now()
        if candidate.start_at <= now + self.buffer:
            raise ValidationException(
                f"Booking must start more than {settings.booking_buffer_minutes} minutes from now",
                details={"start_at": candidate.start_at.isoformat()},
            )
        return station, port, candidate, now

    async def check_slot(self, request: SlotRequest) -> SlotCheck:
        """Run the booking validation and conflict pre-check without reserving anything."""
        _, port, candidate, _ = await self._validate_request(request)
        conflicts = await self._find_conflicts(self.booking_repository, port.id, candidate)
        return SlotCheck(
            station_id=request.station_id,
            port_id=port.id,
            start_at=candidate.start_at,
            end_at=candidate.end_at,
            duration_minutes=request.duration_minutes,
            is_available=not conflicts,
            quote=quote_booking(port.power_output_kw, port.price_per_unit, request.duration_minutes, settings.platform_fee),
            conflicts=[
                {
                    "booking_id": str(item.id),
                    "start_at": item.start_at.isoformat(),
                    "end_at": item.end_at.isoformat(),
                    "local_window": f"{self._local_clock(item.start_at)}-{self._local_clock(item.end_at)}",
                }
                for item in conflicts
            ],
        )

    async def create_booking(self, payload: BookingCreate, requester_id: UUID) -> Booking:
        """Validate, pre-check, then lock the port and commit the booking with the port flip."""
        station, port, candidate, now = await self._validate_request(payload)

        conflicts = await self._find_conflicts(self.booking_repository, port.id, candidate)
        if conflicts:
            raise self._conflict_error(conflicts, operation="create", phase="precheck")

        async with self.unit_of_work() as uow:
            locked_port = await uow.stations.get_port(station.id, port.id, lock=True)
            if locked_port is None:
                raise NotFoundException("Charging port not found")
            self._ensure_port_operational(locked_port)

            conflicts = await self._find_conflicts(uow.bookings, port.id, candidate)
            if conflicts:
                raise self._conflict_error(conflicts, operation="create", phase="transaction")

            pricing = quote_booking(
                locked_port.power_output_kw,
                locked_port.price_per_unit,
                payload.duration_minutes,
                settings.platform_fee,
            )
            customer = payload.customer
            food_order = payload.food_order
            booking = await uow.bookings.create_booking(
                booking_reference=generate_booking_reference(now),
                user_id=requester_id,
                vendor_id=station.vendor_id,
                station_id=station.id,
                port_id=locked_port.id,
                start_at=candidate.start_at,
                end_at=candidate.end_at,
                duration_minutes=payload.duration_minutes,
                price_per_unit=pricing.price_per_unit,
                estimated_units=pricing.estimated_units,
                base_cost=pricing.base_cost,
                taxes=pricing.taxes,
                service_charges=pricing.service_charges,
                platform_fee=pricing.platform_fee,
                merchant_amount=pricing.merchant_amount,
                total_amount=pricing.total_amount,
                status=BookingStatusEnum.CONFIRMED,
                payment_status=PaymentStatusEnum.PAID,
                customer_name=customer.name if customer else None,
                customer_phone=customer.phone_number if customer else None,
                customer_email=customer.email if customer else None,
                vehicle_number=payload.vehicle_number,
                food_order_restaurant_id=food_order.restaurant_id if food_order else None,
                food_order_id=food_order.order_id if food_order else None,
                food_order_placed_at=food_order.ordered_at if food_order else None,
            )
            await uow.stations.set_port_status(locked_port, PortStatusEnum.OCCUPIED)

            await uow.audit.create_audit_log(
                actor_id=requester_id,
                action="booking.created",
                entity_type="booking",
                entity_id=str(booking.id),
                payload={
                    "booking_reference": booking.booking_reference,
                    "port_id": str(locked_port.id),
                    "start_at": candidate.start_at.isoformat(),
                    "end_at": candidate.end_at.isoformat(),
                    "total_amount": str(pricing.total_amount),
                },
            )
            await uow.audit.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.confirmed",
                payload={
                    "booking_id": str(booking.id),
                    "booking_reference": booking.booking_reference,
                    "user_id": str(requester_id),
                    "vendor_id": str(station.vendor_id),
                    "station_id": str(station.id),
                    "port_id": str(locked_port.id),
                },
            )

        BOOKINGS_CREATED_TOTAL.inc()
        logger.info(
            "Booking %s confirmed on port %s for %s-%s",
            booking.booking_reference,
            port.id,
            candidate.start_at.isoformat(),
            candidate.end_at.isoformat(),
        )
        return booking

    async def extend_booking(
        self,
        booking_id: UUID,
        additional_minutes: int,
        requester_id: UUID | None = None,
    ) -> Booking:
        """Push the end out; only bookings starting at or after the current end can conflict."""
        if additional_minutes <= 0:
            raise ValidationException("Extension must be a positive number of minutes")

        current = self._ensure_owner(await self.booking_repository.get_booking_by_id(booking_id), requester_id)
        self._ensure_extendable(current, additional_minutes)
        extra = timedelta(minutes=additional_minutes)
        conflicts = await self._find_conflicts(
            self.booking_repository,
            current.port_id,
            TimeInterval(current.start_at, current.end_at + extra),
            exclude_booking_id=current.id,
            starts_at_or_after=current.end_at,
        )
        if conflicts:
            raise self._conflict_error(conflicts, operation="extend", phase="precheck")

        async with self.unit_of_work() as uow:
            booking, _ = await self._lock_booking(uow, booking_id)
            self._ensure_owner(booking, requester_id)
            self._ensure_extendable(booking, additional_minutes)

            candidate = TimeInterval(booking.start_at, booking.end_at + extra)
            conflicts = await self._find_conflicts(
                uow.bookings,
                booking.port_id,
                candidate,
                exclude_booking_id=booking.id,
                starts_at_or_after=booking.end_at,
            )
            if conflicts:
                raise self._conflict_error(conflicts, operation="extend", phase="transaction")

            station = await uow.stations.get_station_by_id(booking.station_id)
            charge = extension_charge(self._hourly_rate(station, booking.start_at), additional_minutes)
            previous_end = booking.end_at

            booking.end_at = candidate.end_at
            booking.duration_minutes += additional_minutes
            booking.total_amount += charge.total
            booking.base_cost += charge.base_cost
            booking.merchant_amount += charge.base_cost
            booking.taxes += charge.taxes
            booking.service_charges += charge.service_charges
            await uow.bookings.save(booking)

            await uow.audit.create_audit_log(
                actor_id=requester_id,
                action="booking.extended",
                entity_type="booking",
                entity_id=str(booking.id),
                payload={
                    "previous_end_at": previous_end.isoformat(),
                    "end_at": booking.end_at.isoformat(),
                    "additional_minutes": additional_minutes,
                    "hourly_rate": str(charge.hourly_rate),
                    "additional_cost": str(charge.total),
                },
            )
            await uow.audit.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.extended",
                payload={
                    "booking_id": str(booking.id),
                    "user_id": str(booking.user_id),
                    "end_at": booking.end_at.isoformat(),
                    "additional_cost": str(charge.total),
                },
            )

        logger.info("Booking %s extended by %s minutes", booking.booking_reference, additional_minutes)
        return booking

    def _ensure_extendable(self, booking: Booking, additional_minutes: int) -> None:
        if booking.status not in OCCUPYING_BOOKING_STATUSES:
            raise PolicyException(
                "Only confirmed or active bookings can be extended",
                details={"status": str(booking.status)},
            )
        total = booking.duration_minutes + additional_minutes
        if total > settings.booking_max_duration_minutes:
            raise ValidationException(
                f"Total booking duration cannot exceed {settings.booking_max_duration_minutes} minutes",
                details={"duration_minutes": total},
            )

    async def check_in(self, booking_id: UUID, requester_id: UUID | None = None) -> Booking:
        """Start the session: confirmed -> active."""
        async with self.unit_of_work() as uow:
            booking, port = await self._lock_booking(uow, booking_id)
            self._ensure_owner(booking, requester_id)
            if booking.status != BookingStatusEnum.CONFIRMED:
                raise PolicyException(
                    "Only confirmed bookings can be checked in",
                    details={"status": str(booking.status)},
                )

            now = utc_now()
            opens_at = booking.start_at - timedelta(minutes=settings.booking_check_in_early_minutes)
            if now < opens_at:
                raise PolicyException(
                    f"Check-in opens {settings.booking_check_in_early_minutes} minutes before the booking starts",
                    details={"check_in_opens_at": opens_at.isoformat()},
                )
            if now >= booking.end_at:
                raise PolicyException("Booking window has already ended")

            booking.status = BookingStatusEnum.ACTIVE
            booking.actual_start_at = now
            await uow.bookings.save(booking)
            if port is not None and port.current_status != PortStatusEnum.OCCUPIED:
                await uow.stations.set_port_status(port, PortStatusEnum.OCCUPIED)

            await uow.audit.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.checked_in",
                payload={"booking_id": str(booking.id), "actual_start_at": now.isoformat()},
            )
        return booking

    async def complete_booking_early(self, booking_id: UUID, requester_id: UUID | None = None) -> Booking:
        """Finish before the scheduled end and credit unused minutes at the hourly rate.

        Charged time is the elapsed time since the scheduled start with a
        minimum-charge floor. The credit never exceeds what was paid minus the
        platform fee.
        """
        async with self.unit_of_work() as uow:
            booking, port = await self._lock_booking(uow, booking_id)
            self._ensure_owner(booking, requester_id)
            if booking.status not in OCCUPYING_BOOKING_STATUSES:
                raise PolicyException(
                    "Only confirmed or active bookings can be completed",
                    details={"status": str(booking.status)},
                )

            now = utc_now()
            actual_end = min(now, booking.end_at)
            elapsed_seconds = max(0.0, (actual_end - booking.start_at).total_seconds())
            elapsed_minutes = math.ceil(elapsed_seconds / 60)
            charged_minutes = min(
                booking.duration_minutes,
                max(settings.minimum_charged_minutes, elapsed_minutes),
            )
            unused_minutes = booking.duration_minutes - charged_minutes

            station = await uow.stations.get_station_by_id(booking.station_id)
            rate = self._hourly_rate(station, booking.start_at)
            refundable_cap = max(money(0), booking.total_amount - booking.platform_fee)
            usage_refund = min(minutes_cost(rate, unused_minutes), refundable_cap)

            booking.actual_start_at = booking.actual_start_at or min(booking.start_at, actual_end)
            booking.actual_end_at = actual_end
            booking.charged_minutes = charged_minutes
            booking.usage_refund_amount = usage_refund
            booking.final_amount = booking.total_amount - usage_refund
            booking.status = BookingStatusEnum.COMPLETED
            booking.completed_at = now
            if usage_refund > 0 and booking.payment_status == PaymentStatusEnum.PAID:
                booking.payment_status = PaymentStatusEnum.PARTIAL_REFUND
            await uow.bookings.save(booking)
            await self._release_port_if_idle(uow, booking, port)

            await uow.audit.create_audit_log(
                actor_id=requester_id,
                action="booking.completed_early",
                entity_type="booking",
                entity_id=str(booking.id),
                payload={
                    "charged_minutes": charged_minutes,
                    "unused_minutes": unused_minutes,
                    "hourly_rate": str(rate),
                    "usage_refund_amount": str(usage_refund),
                },
            )
            await uow.audit.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.completed",
                payload={
                    "booking_id": str(booking.id),
                    "user_id": str(booking.user_id),
                    "final_amount": str(booking.final_amount),
                    "usage_refund_amount": str(usage_refund),
                },
            )

        logger.info(
            "Booking %s completed early: charged %s min, credited %s",
            booking.booking_reference,
            charged_minutes,
            usage_refund,
        )
        return booking

    async def apply_cancellation(
        self,
        booking_id: UUID,
        requester_id: UUID | None,
        *,
        reason: str | None,
        cancelled_by: CancelledByEnum,
        plan: CancellationPlanner,
    ) -> tuple[Booking, Refund | None]:
        """Cancel under lock; the refund record commits with the status change or not at all."""
        async with self.unit_of_work() as uow:
            booking, port = await self._lock_booking(uow, booking_id)
            self._ensure_owner(booking, requester_id)
            if booking.status not in CANCELLABLE_BOOKING_STATUSES:
                raise PolicyException(
                    f"Booking cannot be cancelled in status {booking.status}",
                    details={"status": str(booking.status)},
                )

            now = utc_now()
            outcome = plan(booking, now)
            refund = None
            if outcome.refund_fields is not None:
                existing = await uow.refunds.get_refund_by_booking_id(booking.id)
                refund = existing or await uow.refunds.create_refund(**outcome.refund_fields)

            booking.status = BookingStatusEnum.CANCELLED
            booking.cancelled_by = cancelled_by
            booking.cancellation_reason = reason
            booking.cancelled_at = now
            booking.refund_eligible = outcome.refund_eligible
            booking.hours_before_start = outcome.hours_before_start
            await uow.bookings.save(booking)
            await self._release_port_if_idle(uow, booking, port)

            await uow.audit.create_audit_log(
                actor_id=requester_id,
                action="booking.cancelled",
                entity_type="booking",
                entity_id=str(booking.id),
                payload={
                    "reason": reason,
                    "cancelled_by": str(cancelled_by),
                    "hours_before_start": str(outcome.hours_before_start),
                    "refund_reference": refund.refund_reference if refund else None,
                },
            )
            await uow.audit.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.cancelled",
                payload={
                    "booking_id": str(booking.id),
                    "user_id": str(booking.user_id),
                    "vendor_id": str(booking.vendor_id),
                    "refund_eligible": outcome.refund_eligible,
                    "refund_amount": str(refund.final_refund_amount) if refund else "0.00",
                },
            )
        return booking, refund

    async def expire_overdue_bookings(self) -> int:
        """Expire confirmed bookings never checked in within the grace window."""
        now = utc_now()
        cutoff = now - timedelta(minutes=settings.booking_check_in_grace_minutes)
        expired = 0
        async with self.unit_of_work() as uow:
            overdue = await uow.bookings.find_overdue_confirmed(cutoff)
            for candidate in overdue:
                booking, port = await self._lock_booking(uow, candidate.id)
                if booking.status != BookingStatusEnum.CONFIRMED or booking.actual_start_at is not None:
                    continue
                booking.status = BookingStatusEnum.EXPIRED
                booking.expired_at = now
                await uow.bookings.save(booking)
                await self._release_port_if_idle(uow, booking, port)
                await uow.audit.create_outbox_event(
                    aggregate_type="booking",
                    aggregate_id=str(booking.id),
                    event_type="booking.expired",
                    payload={"booking_id": str(booking.id), "user_id": str(booking.user_id)},
                )
                expired += 1

        if expired:
            logger.info("Expired %s overdue bookings (cutoff %s)", expired, cutoff.isoformat())
        return expired


async def get_reservation_manager(
    session: AsyncSession = Depends(get_db_session),
) -> ReservationTransactionManager:
    """Dependency provider for the reservation transaction manager."""
    return ReservationTransactionManager(
        booking_repository=BookingRepository(session),
        station_repository=StationRepository(session),
    )
