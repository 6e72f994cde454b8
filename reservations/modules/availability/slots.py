"""Operating-hours calendar and slot generation."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from reservations.modules.booking.overlap import HasInterval, TimeInterval, intervals_overlap
from reservations.modules.booking.pricing import DurationPrice
from reservations.shared.exceptions import ValidationException

MINUTES_PER_DAY = 24 * 60

# Indexed by date.weekday().
WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_clock(value: str) -> int:
    """Parse ``HH:MM`` into minutes after midnight."""
    try:
        hours_text, minutes_text = value.strip().split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as exc:
        raise ValidationException(f"Invalid time value: {value!r}") from exc
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or (hours == 24 and minutes):
        raise ValidationException(f"Invalid time value: {value!r}")
    return hours * 60 + minutes


def format_clock(minute: int) -> str:
    minute %= MINUTES_PER_DAY
    return f"{minute // 60:02d}:{minute % 60:02d}"


@dataclass(frozen=True, slots=True)
class DayWindow:
    """Bookable ``[open, close)`` minutes relative to local midnight of the day.

    ``close_minute`` exceeds one day when the station closes after midnight.
    """

    open_minute: int
    close_minute: int

    @property
    def crosses_midnight(self) -> bool:
        return self.close_minute > MINUTES_PER_DAY

    @property
    def label(self) -> str:
        return f"{format_clock(self.open_minute)} - {format_clock(self.close_minute)}"


FULL_DAY = DayWindow(0, MINUTES_PER_DAY)


def resolve_day_window(operating_hours: Mapping | None, day: date) -> DayWindow | None:
    """Return the operating window for day, or None when the station is closed.

    A weekday missing from the table is open all day.
    """
    entry = (operating_hours or {}).get(WEEKDAY_NAMES[day.weekday()])
    if not entry or entry.get("is_24_hours"):
        return FULL_DAY
    if not entry.get("open") or not entry.get("close"):
        return None

    open_minute = parse_clock(entry["open"])
    close_minute = parse_clock(entry["close"])
    if close_minute <= open_minute:
        close_minute += MINUTES_PER_DAY
    return DayWindow(open_minute, close_minute)


def local_midnight(day: date, zone: ZoneInfo) -> datetime:
    """UTC instant of local midnight starting day."""
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(UTC)


def local_instant(day: date, minute: int, zone: ZoneInfo) -> datetime:
    return local_midnight(day, zone) + timedelta(minutes=minute)


@dataclass(frozen=True, slots=True)
class Slot:
    """One slot start.

    ``local_date`` and ``local_time`` are the calendar values a booking request
    names to start here. Past midnight of an overnight window they fall on the
    next day.
    """

    start_at: datetime
    local_date: date
    local_time: str
    is_available: bool
    is_bookable: bool
    pricing: tuple[DurationPrice, ...] = ()


class SlotGenerator:
    """Finite, restartable sequence of slot starts for one port on one day.

    Each iteration walks the day window afresh, so the same generator can be
    consumed more than once and yields identical slots for identical inputs.

    ``is_available`` is False when a booking covers the slot start.
    ``is_bookable`` is stricter: a minimum-length booking starting there must
    fit the window and clear every existing booking by the handover buffer.
    """

    def __init__(
        self,
        *,
        day: date,
        window: DayWindow,
        zone: ZoneInfo,
        now: datetime,
        step_minutes: int,
        lead_minutes: int,
        bookings: Sequence[HasInterval] = (),
        pricing: Sequence[DurationPrice] = (),
        buffer: timedelta = timedelta(0),
        min_duration_minutes: int | None = None,
    ) -> None:
        if step_minutes <= 0:
            raise ValidationException("Slot step must be positive")
        self.day = day
        self.window = window
        self.zone = zone
        self.now = now
        self.step_minutes = step_minutes
        self.lead_minutes = lead_minutes
        self.booked = tuple(TimeInterval.of(item) for item in bookings)
        self.pricing = tuple(pricing)
        self.buffer = buffer
        self.min_duration_minutes = min_duration_minutes or step_minutes
        self._midnight = local_midnight(day, zone)

    def first_minute(self) -> int:
        """Window open, or the first step boundary strictly after now + lead if later."""
        earliest = self.now + timedelta(minutes=self.lead_minutes)
        elapsed_steps = (earliest - self._midnight) // timedelta(minutes=self.step_minutes)
        return max(self.window.open_minute, (elapsed_steps + 1) * self.step_minutes)

    def is_free(self, instant: datetime) -> bool:
        return not any(interval.contains(instant) for interval in self.booked)

    def is_bookable(self, minute: int, start_at: datetime) -> bool:
        if minute + self.min_duration_minutes > self.window.close_minute:
            return False
        candidate = TimeInterval(start_at, start_at + timedelta(minutes=self.min_duration_minutes))
        return not any(intervals_overlap(candidate, interval, self.buffer) for interval in self.booked)

    def __iter__(self) -> Iterator[Slot]:
        minute = self.first_minute()
        while minute < self.window.close_minute:
            start_at = self._midnight + timedelta(minutes=minute)
            available = self.is_free(start_at)
            yield Slot(
                start_at=start_at,
                local_date=self.day + timedelta(days=minute // MINUTES_PER_DAY),
                local_time=format_clock(minute),
                is_available=available,
                is_bookable=available and self.is_bookable(minute, start_at),
                pricing=self.pricing,
            )
            minute += self.step_minutes
