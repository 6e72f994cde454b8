"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from reservations.core.enums import BookingStatusEnum
from reservations.modules.booking.schemas import (
    BookingCreate,
    BookingExtendRequest,
    BookingRead,
    ExpirySweepRead,
    SlotCheckRead,
    SlotRequest,
)
from reservations.modules.booking.service import ReservationTransactionManager, get_reservation_manager
from reservations.shared.pagination import Page, build_page, get_pagination_params
from reservations.shared.requester import get_requester_id

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> BookingRead:
    """Reserve a port interval."""
    booking = await manager.create_booking(payload, requester_id)
    return BookingRead.model_validate(booking)


@router.get("", response_model=Page[BookingRead])
async def list_my_bookings(
    booking_status: BookingStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> Page[BookingRead]:
    """Booking history for the requester, latest start first."""
    items, total = await manager.list_user_bookings(
        requester_id,
        status=booking_status,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return build_page([BookingRead.model_validate(item) for item in items], total, pagination)


@router.post("/check-slot", response_model=SlotCheckRead)
async def check_slot(
    payload: SlotRequest,
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> SlotCheckRead:
    """Validate an interval and report conflicts without reserving it."""
    result = await manager.check_slot(payload)
    return SlotCheckRead.model_validate(result)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> BookingRead:
    booking = await manager.get_booking(booking_id, requester_id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/extend", response_model=BookingRead)
async def extend_booking(
    booking_id: UUID,
    payload: BookingExtendRequest,
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> BookingRead:
    """Extend booking end when the following interval is free."""
    booking = await manager.extend_booking(booking_id, payload.additional_minutes, requester_id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/check-in", response_model=BookingRead)
async def check_in_booking(
    booking_id: UUID,
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> BookingRead:
    booking = await manager.check_in(booking_id, requester_id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking_early(
    booking_id: UUID,
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
    requester_id: UUID = Depends(get_requester_id),
) -> BookingRead:
    """Finish charging before the scheduled end."""
    booking = await manager.complete_booking_early(booking_id, requester_id)
    return BookingRead.model_validate(booking)


@router.post("/expire-overdue", response_model=ExpirySweepRead)
async def expire_overdue_bookings(
    manager: ReservationTransactionManager = Depends(get_reservation_manager),
) -> ExpirySweepRead:
    """Expiry sweep endpoint for the external scheduler."""
    return ExpirySweepRead(expired=await manager.expire_overdue_bookings())
