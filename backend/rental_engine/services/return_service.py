# Overview: Return processing; closes a rental order, settles fees and frees its reservations.

"""
Return & Settlement

A return is the closing record of a rental order. In one transaction it:

- records what came back (Return + ReturnItem rows, RETURN stock movements)
- computes the late fee with the same formula the lifecycle sweep quotes
- computes the damage fee (policy rate, or a caller override)
- moves the order to RETURNED and its pickup to COMPLETED
- releases every active reservation of the order, so the units become
  available for overlapping windows immediately
- raises a FEES invoice when any fee is due

quantity_on_hand is not touched: rented units never left the stock count,
they were only reserved.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Invoice, Reservation, Return, ReturnItem, StockMovement
from ..models.ledger import MOVEMENT_RETURN
from ..models.orders import (
    INVOICE_DRAFT,
    INVOICE_KIND_FEES,
    OPEN_ORDER_STATUSES,
    ORDER_RETURNED,
    PICKUP_COMPLETED,
)
from ..models.quotations import LINE_RENTAL
from ..models.returns import CONDITION_DAMAGED, CONDITION_GOOD, VALID_CONDITIONS
from ..validation import ConflictError, ValidationError, coerce_datetime, coerce_int, require_positive_int
from rental_engine.time_utils import utcnow
from .concurrency import begin_write_transaction, run_with_retry
from .document_service import DOC_INVOICE, DOC_RETURN, next_document_number
from .fee_service import damage_fee_for_item, late_fee_for_order, tax_on
from .order_service import get_order


class ReturnError(ConflictError):
    """Raised when a return cannot be processed for the order's current state."""
    pass


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        condition = str(raw.get("condition") or CONDITION_GOOD).upper()
        if condition not in VALID_CONDITIONS:
            raise ValidationError(f"items[{index}].condition must be one of {sorted(VALID_CONDITIONS)}")
        normalized.append({
            "product_id": coerce_int(raw.get("product_id"), f"items[{index}].product_id"),
            "quantity": require_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
            "condition": condition,
        })
    return normalized


def _rented_by_product(order) -> dict[int, tuple[int, int]]:
    """product_id -> (rented quantity, rented line value) over the order's RENTAL lines."""
    rented: dict[int, tuple[int, int]] = {}
    for line in order.lines:
        if line.line_type != LINE_RENTAL:
            continue
        qty, value = rented.get(line.product_id, (0, 0))
        rented[line.product_id] = (qty + line.quantity, value + line.line_total_cents)
    return rented


def _check_returnable(order, items: list[dict]) -> dict[int, tuple[int, int]]:
    rented = _rented_by_product(order)
    returned: dict[int, int] = {}
    for item in items:
        product_id = item["product_id"]
        if product_id not in rented:
            raise ReturnError(f"Product {product_id} was not rented on order {order.order_number}")
        returned[product_id] = returned.get(product_id, 0) + item["quantity"]
        if returned[product_id] > rented[product_id][0]:
            raise ReturnError(
                f"Cannot return {returned[product_id]} of product {product_id}: "
                f"only {rented[product_id][0]} rented"
            )
    return rented


def process_return(
    order_id: int,
    items,
    *,
    notes: str | None = None,
    damage_fee_cents=None,
    returned_at: datetime | str | None = None,
) -> Return:
    """
    Process the return of a rental order.

    Args:
        items: [{"product_id", "quantity", "condition"}]; condition GOOD|DAMAGED
        damage_fee_cents: explicit damage charge replacing the policy rate
        returned_at: physical return time (defaults to now)

    Raises:
        OrderNotFoundError: unknown order
        ReturnError: order not open, already returned, or items not rented
        ValidationError: malformed items or override
    """
    normalized = _normalize_items(items)
    override = None
    if damage_fee_cents is not None:
        override = coerce_int(damage_fee_cents, "damage_fee_cents")
        if override < 0:
            raise ValidationError("damage_fee_cents must be >= 0")
    as_of = coerce_datetime(returned_at, "returned_at") if returned_at is not None else utcnow()

    def _op() -> Return:
        begin_write_transaction()
        try:
            rental_return = _process_locked(order_id, normalized, notes, override, as_of)
            db.session.commit()
            return rental_return
        except Exception:
            db.session.rollback()
            raise

    rental_return = run_with_retry(_op)
    current_app.logger.info(
        "Processed return %s for order %s (late_fee=%s damage_fee=%s)",
        rental_return.return_number,
        order_id,
        rental_return.late_fee_cents,
        rental_return.damage_fee_cents,
    )
    return rental_return


def _process_locked(order_id, items, notes, override, as_of) -> Return:
    order = get_order(order_id, lock=True)

    if order.rental_return is not None:
        raise ReturnError("Return already processed")
    if order.status not in OPEN_ORDER_STATUSES:
        raise ReturnError(f"Cannot return order in status {order.status}")

    rented = _check_returnable(order, items)

    late = late_fee_for_order(order, as_of)
    if override is not None:
        damage_fee = override
    else:
        damage_fee = 0
        for item in items:
            if item["condition"] != CONDITION_DAMAGED:
                continue
            rented_qty, rented_value = rented[item["product_id"]]
            damage_fee += damage_fee_for_item(rented_value, rented_qty, item["quantity"])

    rental_return = Return(
        return_number=next_document_number(DOC_RETURN, year=as_of.year),
        order_id=order.id,
        return_date=as_of,
        late_days=late.late_days,
        late_fee_cents=late.late_fee_cents,
        damage_fee_cents=damage_fee,
        notes=notes,
    )
    db.session.add(rental_return)
    db.session.flush()

    for item in items:
        db.session.add(ReturnItem(
            return_id=rental_return.id,
            product_id=item["product_id"],
            quantity=item["quantity"],
            condition=item["condition"],
        ))
        db.session.add(StockMovement(
            product_id=item["product_id"],
            quantity=item["quantity"],
            movement_type=MOVEMENT_RETURN,
            reference_type="RETURN",
            reference_id=rental_return.id,
            remarks=f"Returned {item['condition'].lower()} on {rental_return.return_number}",
            occurred_at=as_of,
        ))

    order.status = ORDER_RETURNED
    if order.pickup is not None and order.pickup.status != PICKUP_COMPLETED:
        order.pickup.status = PICKUP_COMPLETED
        order.pickup.completed_at = order.pickup.completed_at or as_of

    released = (
        db.session.query(Reservation)
        .filter(Reservation.order_id == order.id, Reservation.released_at.is_(None))
        .update({Reservation.released_at: as_of}, synchronize_session="fetch")
    )
    current_app.logger.info("Released %s reservation(s) for order %s", released, order.order_number)

    fees = late.late_fee_cents + damage_fee
    if fees > 0:
        _create_fee_invoice(order, rental_return, fees, as_of)

    db.session.flush()
    return rental_return


def _create_fee_invoice(order, rental_return: Return, fees_cents: int, issued_at: datetime) -> Invoice:
    config = current_app.config
    tax = tax_on(fees_cents, config.get("FEE_TAX_RATE_BPS", 0))
    invoice = Invoice(
        invoice_number=next_document_number(DOC_INVOICE, year=issued_at.year),
        order_id=order.id,
        customer_id=order.customer_id,
        kind=INVOICE_KIND_FEES,
        status=INVOICE_DRAFT,
        issue_date=issued_at,
        due_date=issued_at + timedelta(days=config.get("FEE_INVOICE_DUE_DAYS", 7)),
        subtotal_cents=fees_cents,
        tax_cents=tax,
        total_cents=fees_cents + tax,
        amount_paid_cents=0,
        notes=(
            f"Return {rental_return.return_number}: late fee {rental_return.late_fee_cents} "
            f"({rental_return.late_days} day(s)), damage fee {rental_return.damage_fee_cents}"
        ),
    )
    db.session.add(invoice)
    return invoice
