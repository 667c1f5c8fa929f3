# Overview: Late-return and damage fee policy shared by returns and the lifecycle sweep.

"""
Settlement fee formulas.

The return engine (authoritative charge) and the lifecycle sweep (estimate
shown in overdue alerts) both call late_fee_for_order(), so a customer never
sees two different numbers for the same lateness.

    rental_days = max(1, ceil((rental_end - rental_start) / 1 day))
    late_days   = max(0, ceil((as_of - rental_end) / 1 day))
    daily_rate  = subtotal / rental_days
    late_fee    = late_days * daily_rate * 10%

The 10% rate is a fixed policy constant, not configurable per product.
Amounts are integer cents rounded half-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from rental_engine.time_utils import ceil_days


LATE_FEE_RATE_BPS = 1000  # 10% of the daily rate per late day
BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class LateFee:
    late_days: int
    rental_days: int
    late_fee_cents: int


def _div_half_up(numerator: int, denominator: int) -> int:
    return (numerator + (denominator // 2)) // denominator


def rental_days(rental_start: datetime, rental_end: datetime) -> int:
    """Billable rental duration; start == end still counts as one day."""
    return max(1, ceil_days(rental_end - rental_start))


def late_days(rental_end: datetime, as_of: datetime) -> int:
    return max(0, ceil_days(as_of - rental_end))


def compute_late_fee(
    subtotal_cents: int,
    rental_start: datetime,
    rental_end: datetime,
    as_of: datetime,
) -> LateFee:
    days_late = late_days(rental_end, as_of)
    duration = rental_days(rental_start, rental_end)
    if days_late == 0:
        return LateFee(late_days=0, rental_days=duration, late_fee_cents=0)
    fee = _div_half_up(
        days_late * subtotal_cents * LATE_FEE_RATE_BPS,
        duration * BPS_DENOMINATOR,
    )
    return LateFee(late_days=days_late, rental_days=duration, late_fee_cents=fee)


def late_fee_for_order(order, as_of: datetime) -> LateFee:
    return compute_late_fee(order.subtotal_cents, order.rental_start, order.rental_end, as_of)


def damage_fee_for_item(line_total_cents: int, line_quantity: int, damaged_quantity: int) -> int:
    """
    Damage charge for `damaged_quantity` units of a rented line.

    DAMAGE_FEE_RATE_BPS of the damaged share of the line value; a rate of 0
    leaves damage to manual adjustment.
    """
    rate_bps = current_app.config.get("DAMAGE_FEE_RATE_BPS", 0)
    if rate_bps <= 0 or line_quantity <= 0 or damaged_quantity <= 0:
        return 0
    return _div_half_up(
        line_total_cents * damaged_quantity * rate_bps,
        line_quantity * BPS_DENOMINATOR,
    )


def tax_on(amount_cents: int, rate_bps: int) -> int:
    return _div_half_up(amount_cents * rate_bps, BPS_DENOMINATOR)
