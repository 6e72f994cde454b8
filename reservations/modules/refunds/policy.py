"""Tiered cancellation refund policy."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from reservations.shared.exceptions import ValidationException
from reservations.shared.utils import money

# (hours strictly greater than, percent of refundable amount)
REFUND_TIERS: tuple[tuple[Decimal, int], ...] = (
    (Decimal(24), 100),
    (Decimal(4), 75),
    (Decimal(1), 50),
)
DEFAULT_OCCUPANCY_FEE_PERCENTAGE = Decimal("5")


@dataclass(frozen=True, slots=True)
class RefundCalculation:
    original_amount: Decimal
    platform_fee: Decimal
    hours_before_start: Decimal
    refund_percentage: int
    base_refund_amount: Decimal
    slot_occupancy_fee: Decimal
    slot_occupancy_fee_percentage: Decimal
    platform_fee_deducted: Decimal
    final_refund_amount: Decimal
    is_eligible: bool


def refund_percentage_for(hours_before_start: Decimal) -> int:
    for threshold, percentage in REFUND_TIERS:
        if hours_before_start > threshold:
            return percentage
    return 0


def calculate_refund(
    original_amount: Decimal,
    platform_fee: Decimal,
    hours_before_start: Decimal | float,
    occupancy_fee_percentage: Decimal = DEFAULT_OCCUPANCY_FEE_PERCENTAGE,
) -> RefundCalculation:
    """Refund for cancelling ``hours_before_start`` hours ahead of the slot.

    The platform fee is never refunded. The tier percentage applies to the
    rest, then the slot occupancy fee is taken off the tiered amount.
    """
    original = Decimal(original_amount)
    fee = Decimal(platform_fee)
    hours = Decimal(str(hours_before_start))
    if original < 0 or fee < 0:
        raise ValidationException("Refund amounts must not be negative")

    refundable = max(Decimal(0), original - fee)
    percentage = refund_percentage_for(hours)
    base_refund = money(refundable * percentage / 100)
    occupancy_fee = money(base_refund * Decimal(occupancy_fee_percentage) / 100)
    final_refund = max(money(0), base_refund - occupancy_fee)

    return RefundCalculation(
        original_amount=money(original),
        platform_fee=money(fee),
        hours_before_start=hours,
        refund_percentage=percentage,
        base_refund_amount=base_refund,
        slot_occupancy_fee=occupancy_fee,
        slot_occupancy_fee_percentage=Decimal(occupancy_fee_percentage),
        platform_fee_deducted=money(fee),
        final_refund_amount=final_refund,
        is_eligible=final_refund > 0,
    )
