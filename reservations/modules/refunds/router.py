"""Cancellation and refund API router."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from reservations.core.enums import RefundStatusEnum
from reservations.modules.refunds.schemas import (
    CancellationRequest,
    CancellationResultRead,
    RefundPreviewRead,
    RefundRead,
)
from reservations.modules.refunds.service import (
    CancellationOrchestrator,
    CancellationSecurityContext,
    get_cancellation_orchestrator,
)
from reservations.shared.pagination import Page, build_page, get_pagination_params
from reservations.shared.requester import get_requester_id

router = APIRouter(tags=["refunds"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


@router.get("/bookings/{booking_id}/refund-preview", response_model=RefundPreviewRead)
async def preview_refund(
    booking_id: UUID,
    orchestrator: CancellationOrchestrator = Depends(get_cancellation_orchestrator),
    requester_id: UUID = Depends(get_requester_id),
) -> RefundPreviewRead:
    """Refund the requester would get by cancelling now."""
    preview = await orchestrator.preview_refund(booking_id, requester_id)
    return RefundPreviewRead.model_validate(preview)


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationResultRead)
async def cancel_booking(
    booking_id: UUID,
    payload: CancellationRequest,
    request: Request,
    orchestrator: CancellationOrchestrator = Depends(get_cancellation_orchestrator),
    requester_id: UUID = Depends(get_requester_id),
) -> CancellationResultRead:
    """Cancel booking and apply the refund policy."""
    security = CancellationSecurityContext(
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        requested_amount=payload.requested_amount,
    )
    result = await orchestrator.cancel_booking_with_refund(booking_id, requester_id, payload.reason, security)
    return CancellationResultRead.model_validate(result)


@router.get("/refunds", response_model=Page[RefundRead])
async def list_my_refunds(
    status: RefundStatusEnum | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    orchestrator: CancellationOrchestrator = Depends(get_cancellation_orchestrator),
    requester_id: UUID = Depends(get_requester_id),
) -> Page[RefundRead]:
    """Refund history for the requester."""
    items, total = await orchestrator.list_user_refunds(
        requester_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    serialized = [RefundRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/refunds/{refund_identifier}", response_model=RefundRead)
async def get_refund_status(
    refund_identifier: str,
    orchestrator: CancellationOrchestrator = Depends(get_cancellation_orchestrator),
    requester_id: UUID = Depends(get_requester_id),
) -> RefundRead:
    """Look up a refund by reference or id."""
    refund = await orchestrator.get_refund_status(refund_identifier, requester_id)
    return RefundRead.model_validate(refund)
