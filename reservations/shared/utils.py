"""Shared utility functions."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from zoneinfo import ZoneInfo

_CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


@lru_cache
def get_zone(name: str) -> ZoneInfo:
    """Return cached zone info for IANA timezone name."""
    return ZoneInfo(name)


def money(value: Decimal | int | float | str) -> Decimal:
    """Round amount to cents (half up)."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)
