"""Ordered strategies for locating the food order linked to a booking.

A booking may reference its order directly. Older bookings only carry the
restaurant and the customer's contact details, so the fallback strategies
search by identity inside a narrow time window around a known timestamp.
Strategies run in order and the first hit wins.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID

from reservations.core.config import Settings
from reservations.modules.orders.models import FoodOrder
from reservations.modules.orders.repository import OrderRepository


@dataclass(frozen=True, slots=True)
class OrderLookup:
    """Everything a booking knows about its linked order."""

    restaurant_id: UUID
    order_id: UUID | None
    customer_phone: str | None
    customer_name: str | None
    booking_created_at: datetime
    order_placed_at: datetime | None


@dataclass(frozen=True, slots=True)
class OrderMatch:
    order: FoodOrder
    strategy: str


class OrderMatchStrategy(Protocol):
    name: str

    async def find(self, repository: OrderRepository, lookup: OrderLookup) -> FoodOrder | None:
        """Return matching cancellable order or None."""


class DirectReferenceMatch:
    """Match by the order id stored on the booking."""

    name = "direct_reference"

    async def find(self, repository: OrderRepository, lookup: OrderLookup) -> FoodOrder | None:
        if lookup.order_id is None:
            return None
        return await repository.get_cancellable_order(lookup.order_id)


class IdentityWindowMatch:
    """Match by restaurant + customer phone inside a window around an anchor timestamp."""

    def __init__(self, *, name: str, anchor: str, window: timedelta, match_name: bool) -> None:
        self.name = name
        self._anchor = anchor
        self._window = window
        self._match_name = match_name

    async def find(self, repository: OrderRepository, lookup: OrderLookup) -> FoodOrder | None:
        anchor_at: datetime | None = getattr(lookup, self._anchor)
        if anchor_at is None or not lookup.customer_phone:
            return None
        if self._match_name and not lookup.customer_name:
            return None
        return await repository.find_cancellable_order(
            restaurant_id=lookup.restaurant_id,
            customer_phone=lookup.customer_phone,
            ordered_from=anchor_at - self._window,
            ordered_to=anchor_at + self._window,
            customer_name=lookup.customer_name if self._match_name else None,
        )


class FoodOrderMatcher:
    """Run match strategies in order."""

    def __init__(self, strategies: Sequence[OrderMatchStrategy]) -> None:
        self.strategies = tuple(strategies)

    async def match(self, repository: OrderRepository, lookup: OrderLookup) -> OrderMatch | None:
        for strategy in self.strategies:
            order = await strategy.find(repository, lookup)
            if order is not None:
                return OrderMatch(order=order, strategy=strategy.name)
        return None


def build_order_matcher(settings: Settings) -> FoodOrderMatcher:
    """Default strategy chain: direct reference, then identity around booking, then around order time."""
    return FoodOrderMatcher(
        [
            DirectReferenceMatch(),
            IdentityWindowMatch(
                name="identity_near_booking",
                anchor="booking_created_at",
                window=timedelta(minutes=settings.order_match_booking_window_minutes),
                match_name=True,
            ),
            IdentityWindowMatch(
                name="identity_near_order",
                anchor="order_placed_at",
                window=timedelta(minutes=settings.order_match_order_window_minutes),
                match_name=False,
            ),
        ],
    )
