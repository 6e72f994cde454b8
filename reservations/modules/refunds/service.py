"""Cancellation and refund business logic layer."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.config import get_settings
from reservations.core.database import get_db_session
from reservations.core.enums import (
    CANCELLABLE_BOOKING_STATUSES,
    BookingStatusEnum,
    CancelledByEnum,
    PaymentStatusEnum,
    RefundStatusEnum,
)
from reservations.core.metrics import CANCELLATIONS_TOTAL, ORDER_CASCADE_TOTAL
from reservations.core.rate_limit import CancellationThrottle, ThrottleReservation, get_cancellation_throttle
from reservations.modules.booking.models import Booking
from reservations.modules.booking.repository import BookingRepository
from reservations.modules.booking.service import CancellationPlan, ReservationTransactionManager
from reservations.modules.booking.unit_of_work import UnitOfWorkFactory, reservation_transaction
from reservations.modules.orders.matching import FoodOrderMatcher, OrderLookup, build_order_matcher
from reservations.modules.orders.models import FoodOrder
from reservations.modules.refunds.models import Refund
from reservations.modules.refunds.policy import RefundCalculation, calculate_refund
from reservations.modules.refunds.repository import RefundRepository
from reservations.modules.stations.repository import StationRepository
from reservations.shared.exceptions import (
    NotFoundException,
    PolicyException,
    SecurityException,
)
from reservations.shared.utils import money, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CancellationSecurityContext:
    """Request facts used for abuse throttling and tamper detection."""

    ip_address: str | None = None
    user_agent: str | None = None
    requested_amount: Decimal | None = None


@dataclass(slots=True)
class RefundPreview:
    booking_id: UUID
    booking_reference: str
    can_cancel: bool
    hours_before_start: Decimal
    calculation: RefundCalculation
    policy: dict = field(default_factory=dict)


@dataclass(slots=True)
class CancellationResult:
    booking: Booking
    refund: Refund | None
    calculation: RefundCalculation
    cascaded_order: FoodOrder | None = None
    cascade_strategy: str | None = None


def hours_until(start_at: datetime, now: datetime) -> Decimal:
    return Decimal(str((start_at - now).total_seconds() / 3600))


def request_signature(booking_id: UUID, user_id: UUID, amount: Decimal, timestamp_ms: int) -> str:
    """SHA-256 over the refund request facts."""
    body = json.dumps(
        {
            "bookingId": str(booking_id),
            "userId": str(user_id),
            "amount": str(amount),
            "timestamp": timestamp_ms,
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def refund_reference_for(booking: Booking) -> str:
    """Deterministic per booking, so a retried cancellation cannot mint a second refund."""
    return f"RF-{booking.booking_reference}"


def cancellation_policy() -> dict:
    return {
        "tiers": [
            {"hours_before_start_gt": 24, "refund_percentage": 100},
            {"hours_before_start_gt": 4, "refund_percentage": 75},
            {"hours_before_start_gt": 1, "refund_percentage": 50},
            {"hours_before_start_gt": None, "refund_percentage": 0},
        ],
        "slot_occupancy_fee_percentage": str(settings.refund_slot_occupancy_fee_percentage),
        "platform_fee_refundable": False,
    }


class CancellationOrchestrator:
    """Cancels bookings, records refunds and cascades to linked food orders."""

    def __init__(
        self,
        manager: ReservationTransactionManager,
        booking_repository: BookingRepository,
        refund_repository: RefundRepository,
        throttle: CancellationThrottle,
        order_matcher: FoodOrderMatcher,
        unit_of_work: UnitOfWorkFactory = reservation_transaction,
    ) -> None:
        self.manager = manager
        self.booking_repository = booking_repository
        self.refund_repository = refund_repository
        self.throttle = throttle
        self.order_matcher = order_matcher
        self.unit_of_work = unit_of_work

    @property
    def throttle_window_seconds(self) -> int:
        return settings.cancellation_window_hours * 3600

    @staticmethod
    def _throttle_key(user_id: UUID) -> str:
        return f"user:{user_id}"

    async def _get_owned_booking(self, booking_id: UUID, user_id: UUID) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None or booking.user_id != user_id:
            raise NotFoundException("Booking not found")
        return booking

    async def _reserve_cancellation(self, user_id: UUID) -> ThrottleReservation:
        """Take one slot of the per-user cancellation allowance, or refuse."""
        reservation = await self.throttle.acquire(
            self._throttle_key(user_id),
            limit=settings.cancellation_limit,
            window_seconds=self.throttle_window_seconds,
        )
        if not reservation.allowed:
            logger.warning("Cancellation throttled for user %s (%s recent)", user_id, reservation.recent)
            raise SecurityException(
                f"Too many cancellations in the last {settings.cancellation_window_hours} hours. "
                "Please contact support.",
                details={"recent_cancellations": reservation.recent},
            )
        return reservation

    @staticmethod
    def _verify_amount(booking: Booking, user_id: UUID, security: CancellationSecurityContext) -> None:
        if security.requested_amount is not None and money(security.requested_amount) != money(booking.total_amount):
            logger.warning(
                "Refund amount mismatch on booking %s by user %s from %s",
                booking.id,
                user_id,
                security.ip_address,
            )
            raise SecurityException("Invalid refund amount requested. Security violation detected.")

    def _calculate(self, booking: Booking, now: datetime) -> RefundCalculation:
        return calculate_refund(
            booking.total_amount,
            booking.platform_fee,
            hours_until(booking.start_at, now),
            settings.refund_slot_occupancy_fee_percentage,
        )

    async def preview_refund(self, booking_id: UUID, user_id: UUID) -> RefundPreview:
        """What cancelling right now would refund. Read-only."""
        booking = await self._get_owned_booking(booking_id, user_id)
        now = utc_now()
        calculation = self._calculate(booking, now)
        return RefundPreview(
            booking_id=booking.id,
            booking_reference=booking.booking_reference,
            can_cancel=booking.status in CANCELLABLE_BOOKING_STATUSES,
            hours_before_start=money(max(Decimal(0), calculation.hours_before_start)),
            calculation=calculation,
            policy=cancellation_policy(),
        )

    def _refund_fields(
        self,
        booking: Booking,
        user_id: UUID,
        calculation: RefundCalculation,
        reason: str | None,
        security: CancellationSecurityContext,
        now: datetime,
    ) -> dict:
        timestamp_ms = int(now.timestamp() * 1000)
        return {
            "refund_reference": refund_reference_for(booking),
            "booking_id": booking.id,
            "user_id": user_id,
            "vendor_id": booking.vendor_id,
            "original_amount": calculation.original_amount,
            "platform_fee": calculation.platform_fee,
            "base_refund_amount": calculation.base_refund_amount,
            "slot_occupancy_fee": calculation.slot_occupancy_fee,
            "slot_occupancy_fee_percentage": calculation.slot_occupancy_fee_percentage,
            "platform_fee_deducted": calculation.platform_fee_deducted,
            "final_refund_amount": calculation.final_refund_amount,
            "refund_percentage": calculation.refund_percentage,
            "hours_before_start": money(max(Decimal(0), calculation.hours_before_start)),
            "cancellation_reason": reason,
            "refund_status": RefundStatusEnum.PENDING,
            "security_validation": {
                "ip_address": security.ip_address,
                "user_agent": security.user_agent,
                "request_signature": request_signature(booking.id, user_id, booking.total_amount, timestamp_ms),
                "validated_at": now.isoformat(),
                "validated_by": "system",
            },
            "audit_trail": [
                {
                    "action": "created",
                    "actor": str(user_id),
                    "timestamp": now.isoformat(),
                    "metadata": {
                        "refund_percentage": calculation.refund_percentage,
                        "final_refund_amount": str(calculation.final_refund_amount),
                    },
                },
            ],
        }

    async def cancel_booking_with_refund(
        self,
        booking_id: UUID,
        user_id: UUID,
        reason: str | None,
        security: CancellationSecurityContext,
        cancelled_by: CancelledByEnum = CancelledByEnum.USER,
    ) -> CancellationResult:
        """Cancel, record the refund in the same transaction, then cascade to the food order.

        The throttle slot is taken before anything else and handed back if the
        cancellation does not commit, so only completed cancellations count.
        """
        booking = await self._get_owned_booking(booking_id, user_id)
        reservation = await self._reserve_cancellation(user_id)
        try:
            booking, refund, calculation = await self._cancel(booking, user_id, reason, security, cancelled_by)
        except Exception:
            await self.throttle.release(self._throttle_key(user_id), reservation.token)
            raise

        CANCELLATIONS_TOTAL.labels(refund_eligible=str(bool(booking.refund_eligible)).lower()).inc()
        logger.info(
            "Booking %s cancelled by %s; refund %s",
            booking.booking_reference,
            cancelled_by,
            refund.final_refund_amount if refund else "none",
        )

        result = CancellationResult(booking=booking, refund=refund, calculation=calculation)
        if booking.food_order_restaurant_id is not None:
            await self._cascade_food_order(booking, reason, result)
        return result

    async def _cancel(
        self,
        booking: Booking,
        user_id: UUID,
        reason: str | None,
        security: CancellationSecurityContext,
        cancelled_by: CancelledByEnum,
    ) -> tuple[Booking, Refund | None, RefundCalculation]:
        self._verify_amount(booking, user_id, security)
        if booking.status == BookingStatusEnum.CANCELLED:
            raise PolicyException("Booking is already cancelled")
        if booking.status not in CANCELLABLE_BOOKING_STATUSES:
            raise PolicyException(
                "Booking cannot be cancelled at this stage",
                details={"status": str(booking.status)},
            )

        calculations: list[RefundCalculation] = []

        def plan(locked: Booking, now: datetime) -> CancellationPlan:
            calculation = self._calculate(locked, now)
            calculations.append(calculation)
            eligible = calculation.is_eligible and locked.payment_status == PaymentStatusEnum.PAID
            return CancellationPlan(
                hours_before_start=money(max(Decimal(0), calculation.hours_before_start)),
                refund_eligible=eligible,
                refund_fields=(
                    self._refund_fields(locked, user_id, calculation, reason, security, now) if eligible else None
                ),
            )

        booking, refund = await self.manager.apply_cancellation(
            booking.id,
            user_id,
            reason=reason,
            cancelled_by=cancelled_by,
            plan=plan,
        )
        return booking, refund, calculations[-1]

    async def _cascade_food_order(self, booking: Booking, reason: str | None, result: CancellationResult) -> None:
        """Best effort. A missing or failing order never undoes the booking cancellation."""
        lookup = OrderLookup(
            restaurant_id=booking.food_order_restaurant_id,
            order_id=booking.food_order_id,
            customer_phone=booking.customer_phone,
            customer_name=booking.customer_name,
            booking_created_at=booking.created_at,
            order_placed_at=booking.food_order_placed_at,
        )
        try:
            async with self.unit_of_work() as uow:
                match = await self.order_matcher.match(uow.orders, lookup)
                if match is None:
                    ORDER_CASCADE_TOTAL.labels(outcome="not_found").inc()
                    logger.info("No cancellable food order found for booking %s", booking.booking_reference)
                    return
                order = await uow.orders.cancel_order(
                    match.order,
                    reason=f"Charging booking cancelled: {reason or 'no reason given'}",
                    cancelled_by=CancelledByEnum.SYSTEM,
                    refund_eligible=bool(booking.refund_eligible),
                    cancelled_at=booking.cancelled_at or utc_now(),
                )
                await uow.audit.create_outbox_event(
                    aggregate_type="food_order",
                    aggregate_id=str(order.id),
                    event_type="food_order.cancelled",
                    payload={
                        "order_id": str(order.id),
                        "order_number": order.order_number,
                        "booking_id": str(booking.id),
                        "match_strategy": match.strategy,
                    },
                )
        except Exception:
            ORDER_CASCADE_TOTAL.labels(outcome="failed").inc()
            logger.exception("Food order cascade failed for booking %s", booking.booking_reference)
            return

        ORDER_CASCADE_TOTAL.labels(outcome="cancelled").inc()
        result.cascaded_order = order
        result.cascade_strategy = match.strategy

    async def get_refund_status(self, identifier: str, user_id: UUID) -> Refund:
        refund = await self.refund_repository.get_refund_for_user(identifier, user_id)
        if refund is None:
            raise NotFoundException("Refund not found")
        return refund

    async def list_user_refunds(
        self,
        user_id: UUID,
        *,
        status: RefundStatusEnum | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Refund], int]:
        return await self.refund_repository.list_user_refunds(
            user_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )


async def get_cancellation_orchestrator(
    session: AsyncSession = Depends(get_db_session),
) -> CancellationOrchestrator:
    """Dependency provider for cancellation orchestrator."""
    booking_repository = BookingRepository(session)
    return CancellationOrchestrator(
        manager=ReservationTransactionManager(
            booking_repository=booking_repository,
            station_repository=StationRepository(session),
        ),
        booking_repository=booking_repository,
        refund_repository=RefundRepository(session),
        throttle=get_cancellation_throttle(),
        order_matcher=build_order_matcher(settings),
    )
