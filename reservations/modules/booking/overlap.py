"""Buffered interval overlap checks.

Every conflict decision in the reservation flow goes through
``intervals_overlap``: the fast pre-check, the re-check inside the
transaction, extensions and slot availability. Intervals are half-open
``[start, end)`` and both sides are widened by the buffer before comparing,
so two bookings on one port always keep a handover gap of at least twice the
buffer.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, TypeVar

from reservations.shared.exceptions import ValidationException


class HasInterval(Protocol):
    start_at: datetime
    end_at: datetime


T = TypeVar("T", bound=HasInterval)


@dataclass(frozen=True, slots=True)
class TimeInterval:
    """Half-open time interval."""

    start_at: datetime
    end_at: datetime

    def __post_init__(self) -> None:
        if self.end_at <= self.start_at:
            raise ValidationException("Interval end must be after its start")

    @classmethod
    def of(cls, item: HasInterval) -> TimeInterval:
        return cls(item.start_at, item.end_at)

    def widened(self, buffer: timedelta) -> TimeInterval:
        return TimeInterval(self.start_at - buffer, self.end_at + buffer)

    def contains(self, instant: datetime) -> bool:
        return self.start_at <= instant < self.end_at


def intervals_overlap(first: TimeInterval, second: TimeInterval, buffer: timedelta = timedelta(0)) -> bool:
    """Return True when the buffered intervals intersect."""
    a = first.widened(buffer)
    b = second.widened(buffer)
    return a.start_at < b.end_at and a.end_at > b.start_at


def conflict_search_range(candidate: TimeInterval, buffer: timedelta) -> tuple[datetime, datetime]:
    """Raw-interval range an existing booking must intersect to conflict with candidate.

    Equivalent to ``intervals_overlap`` for storage queries that compare raw
    start/end columns.
    """
    return candidate.start_at - 2 * buffer, candidate.end_at + 2 * buffer


def find_overlapping(candidate: TimeInterval, existing: Iterable[T], buffer: timedelta) -> list[T]:
    """Filter items whose interval overlaps candidate, ordered by start."""
    hits = [item for item in existing if intervals_overlap(candidate, TimeInterval.of(item), buffer)]
    return sorted(hits, key=lambda item: item.start_at)
