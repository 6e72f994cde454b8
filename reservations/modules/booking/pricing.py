"""Booking price calculations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from reservations.shared.utils import money

_UNITS = Decimal("0.001")
_MINUTES_PER_HOUR = Decimal(60)

EXTENSION_BASE_SHARE = Decimal("0.80")
EXTENSION_TAX_SHARE = Decimal("0.18")


@dataclass(frozen=True, slots=True)
class BookingPricing:
    price_per_unit: Decimal
    estimated_units: Decimal
    base_cost: Decimal
    taxes: Decimal
    service_charges: Decimal
    platform_fee: Decimal
    merchant_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True, slots=True)
class ExtensionCharge:
    """Incremental cost of an extension and its split across price components."""

    minutes: int
    hourly_rate: Decimal
    total: Decimal
    base_cost: Decimal
    taxes: Decimal
    service_charges: Decimal


@dataclass(frozen=True, slots=True)
class DurationPrice:
    duration_minutes: int
    estimated_units: Decimal
    total_amount: Decimal


def quote_booking(
    power_output_kw: Decimal,
    price_per_unit: Decimal,
    duration_minutes: int,
    platform_fee: Decimal,
) -> BookingPricing:
    """Price a booking from port power, unit price and duration.

    Units are energy (kWh) for the whole slot. The platform fee is added on
    top of the base cost and is not part of the merchant amount.
    """
    hours = Decimal(duration_minutes) / _MINUTES_PER_HOUR
    units = (Decimal(power_output_kw) * hours).quantize(_UNITS)
    base_cost = money(units * Decimal(price_per_unit))
    fee = money(platform_fee)
    return BookingPricing(
        price_per_unit=money(price_per_unit),
        estimated_units=units,
        base_cost=base_cost,
        taxes=money(0),
        service_charges=money(0),
        platform_fee=fee,
        merchant_amount=base_cost,
        total_amount=base_cost + fee,
    )


def duration_options(
    power_output_kw: Decimal,
    price_per_unit: Decimal,
    durations: Iterable[int],
    platform_fee: Decimal,
) -> list[DurationPrice]:
    """Quote each offered duration for slot listings."""
    options = []
    for minutes in durations:
        pricing = quote_booking(power_output_kw, price_per_unit, minutes, platform_fee)
        options.append(
            DurationPrice(
                duration_minutes=minutes,
                estimated_units=pricing.estimated_units,
                total_amount=pricing.total_amount,
            ),
        )
    return options


def is_peak(start_at: datetime, zone: ZoneInfo, peak_start_hour: int, peak_end_hour: int) -> bool:
    """Peak is decided by the local wall-clock hour of start_at."""
    local_hour = start_at.astimezone(zone).hour
    return peak_start_hour <= local_hour < peak_end_hour


def hourly_rate_for(
    start_at: datetime,
    zone: ZoneInfo,
    *,
    peak_rate: Decimal,
    off_peak_rate: Decimal,
    peak_start_hour: int,
    peak_end_hour: int,
) -> Decimal:
    if is_peak(start_at, zone, peak_start_hour, peak_end_hour):
        return Decimal(peak_rate)
    return Decimal(off_peak_rate)


def minutes_cost(hourly_rate: Decimal, minutes: int) -> Decimal:
    return money(Decimal(hourly_rate) * Decimal(minutes) / _MINUTES_PER_HOUR)


def extension_charge(hourly_rate: Decimal, minutes: int) -> ExtensionCharge:
    """Split the extension cost; service charges absorb rounding so parts sum to total."""
    total = minutes_cost(hourly_rate, minutes)
    base_cost = money(total * EXTENSION_BASE_SHARE)
    taxes = money(total * EXTENSION_TAX_SHARE)
    return ExtensionCharge(
        minutes=minutes,
        hourly_rate=Decimal(hourly_rate),
        total=total,
        base_cost=base_cost,
        taxes=taxes,
        service_charges=total - base_cost - taxes,
    )
