# Overview: Reservation planner; validates a quotation's lines against the inventory ledger.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Protocol

from ..extensions import db
from ..models import Quotation
from ..models.quotations import LINE_RENTAL, LINE_SALE, VALID_LINE_TYPES
from ..validation import NotFoundError, ValidationError, validate_window
from rental_engine.time_utils import utcnow
from .inventory_service import InsufficientStockError, available_quantity, get_product, sellable_quantity


class QuotationNotFoundError(NotFoundError):
    """Quotation id does not exist."""


class PlannableLine(Protocol):
    product_id: int
    quantity: int
    line_type: str


@dataclass
class ReservationPlan:
    """What confirming a quotation will claim: coalesced rentals and sale decrements."""
    rental_start: datetime | None
    rental_end: datetime | None
    reservations: list[tuple[int, int]] = field(default_factory=list)
    sale_decrements: list[tuple[int, int]] = field(default_factory=list)

    @property
    def has_rentals(self) -> bool:
        return bool(self.reservations)


def _coalesce(lines: Iterable[PlannableLine], line_type: str) -> list[tuple[int, int]]:
    totals: dict[int, int] = {}
    for line in lines:
        if line.line_type != line_type:
            continue
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    # dicts keep first-seen order, so the plan follows quotation order
    return list(totals.items())


def plan_reservations(lines: Iterable[PlannableLine]) -> list[tuple[int, int]]:
    """RENTAL lines merged by product id: one (product_id, total_qty) per product."""
    return _coalesce(lines, LINE_RENTAL)


def _validate_line(line: PlannableLine) -> None:
    if line.line_type not in VALID_LINE_TYPES:
        raise ValidationError(f"Unknown line type {line.line_type!r}")
    if line.quantity is None or line.quantity <= 0:
        raise ValidationError(f"Quantity for product {line.product_id} must be > 0")


def check_lines(
    lines: list[PlannableLine],
    rental_start: datetime | None,
    rental_end: datetime | None,
    *,
    lock: bool = False,
    as_of: datetime | None = None,
) -> ReservationPlan:
    """
    Validate every line in the order given and return the reservation plan.

    RENTAL lines are checked against window availability. SALE lines are
    checked against quantity_on_hand less the peak quantity reserved from
    as_of (default now) onward. Units requested by earlier lines for the
    same product count against later ones. The first failing line raises
    InsufficientStockError; nothing is aggregated. No writes.

    lock=True takes row locks on the products (ascending id, so concurrent
    confirmations never deadlock); only meaningful inside a write transaction.
    """
    if not lines:
        raise ValidationError("Quotation has no lines")

    for line in lines:
        _validate_line(line)

    if any(line.line_type == LINE_RENTAL for line in lines):
        validate_window(rental_start, rental_end)

    as_of = as_of or utcnow()
    product_ids = sorted({line.product_id for line in lines})
    for product_id in product_ids:
        get_product(product_id, lock=lock)

    claimed: dict[int, int] = {}
    for line in lines:
        already = claimed.get(line.product_id, 0)
        if line.line_type == LINE_RENTAL:
            free = available_quantity(line.product_id, rental_start, rental_end)
        else:
            free = sellable_quantity(line.product_id, as_of)
        remaining = free - already
        if line.quantity > remaining:
            raise InsufficientStockError(line.product_id, line.quantity, max(remaining, 0))
        claimed[line.product_id] = already + line.quantity

    return ReservationPlan(
        rental_start=rental_start,
        rental_end=rental_end,
        reservations=plan_reservations(lines),
        sale_decrements=_coalesce(lines, LINE_SALE),
    )


def precheck_quotation(quotation_id: int) -> ReservationPlan:
    """
    Fast availability check for checkout feedback.

    Runs outside the write transaction, so a passing result is advisory:
    confirm_quotation() repeats the check under lock before committing.
    """
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise QuotationNotFoundError(f"Quotation {quotation_id} not found")
    return check_lines(list(quotation.lines), quotation.rental_start, quotation.rental_end)
