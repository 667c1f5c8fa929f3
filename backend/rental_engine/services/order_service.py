# Overview: Order confirmation transaction and the order/invoice/payment operations around it.

"""
Order Confirmation

Turns a DRAFT quotation into a committed order in one unit of work:

    lock -> re-check availability -> address -> order + lines
         -> reservations (coalesced) / sale decrements -> invoice
         -> pickup + stock movements -> quotation CONFIRMED

Either every write is committed or none is. The availability re-check runs
after the write lock is taken, which is what closes the race with the
advisory pre-check done by checkout. Confirming an already confirmed
quotation returns the existing order instead of failing, so callers may
retry freely.

The confirmation e-mail and notification are sent after commit; their
failure is logged and never affects the order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Address,
    Invoice,
    OrderLine,
    Pickup,
    PickupItem,
    Quotation,
    RentalOrder,
    Reservation,
    StockMovement,
    User,
)
from ..models.ledger import MOVEMENT_PICKUP, MOVEMENT_SALE_DECREMENT
from ..models.notifications import NOTIFICATION_ORDER_CONFIRMED
from ..models.orders import (
    INVOICE_DRAFT,
    INVOICE_KIND_FEES,
    INVOICE_KIND_ORDER,
    INVOICE_PAID,
    INVOICE_PARTIAL,
    ORDER_CONFIRMED,
    PICKUP_PENDING,
)
from ..models.quotations import LINE_RENTAL, LINE_SALE, QUOTATION_CONFIRMED, QUOTATION_DRAFT
from ..validation import ConflictError, NotFoundError, ValidationError, require_amount_cents
from rental_engine.time_utils import utcnow
from . import mail_templates
from .concurrency import RETRYABLE_ERRORS, begin_write_transaction, lock_for_update, run_with_retry
from .document_service import DOC_INVOICE, DOC_ORDER, DOC_PICKUP, next_document_number
from .inventory_service import get_product
from .mail_service import send_email
from .notification_service import notify_once
from .reservation_service import QuotationNotFoundError, check_lines


__all__ = [
    "AlreadyConfirmedError",
    "ConfirmationResult",
    "OrderNotFoundError",
    "QuotationNotFoundError",
    "confirm_quotation",
    "get_or_create_invoice",
    "get_order",
    "get_order_summary",
    "invoice_status_for",
    "record_payment",
]


class OrderNotFoundError(NotFoundError):
    """Order id does not exist."""


class AlreadyConfirmedError(ConflictError):
    """
    Quotation was confirmed before.

    Not a failure for callers of confirm_quotation(): it is converted into a
    successful result pointing at the existing order.
    """

    def __init__(self, quotation_id: int, order: RentalOrder):
        super().__init__(f"Quotation {quotation_id} already confirmed as {order.order_number}")
        self.order_id = order.id
        self.order_number = order.order_number


@dataclass(frozen=True)
class ConfirmationResult:
    order_id: int
    order_number: str
    created: bool

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "created": self.created,
        }


PLACEHOLDER_ADDRESS = {
    "street": "Default Pickup",
    "city": "City",
    "state": "State",
    "postal_code": "000000",
}


# =============================================================================
# HELPERS
# =============================================================================

def invoice_status_for(amount_paid_cents: int, total_cents: int) -> str:
    if amount_paid_cents >= total_cents:
        return INVOICE_PAID
    if amount_paid_cents > 0:
        return INVOICE_PARTIAL
    return INVOICE_DRAFT


def get_order(order_id: int, *, lock: bool = False) -> RentalOrder:
    query = db.session.query(RentalOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def _resolve_address(customer_id: int, address_id: int | None) -> Address:
    """Caller's address, else the customer's default, else a placeholder default."""
    if address_id is not None:
        address = db.session.get(Address, address_id)
        if address is None or address.user_id != customer_id:
            raise ValidationError(f"Address {address_id} does not belong to customer {customer_id}")
        return address

    address = (
        db.session.query(Address)
        .filter_by(user_id=customer_id)
        .order_by(Address.is_default.desc(), Address.id.asc())
        .first()
    )
    if address is not None:
        return address

    address = Address(user_id=customer_id, is_default=True, **PLACEHOLDER_ADDRESS)
    db.session.add(address)
    db.session.flush()
    return address


def _new_order_invoice(order: RentalOrder, now) -> Invoice:
    invoice = Invoice(
        invoice_number=next_document_number(DOC_INVOICE, year=now.year),
        order_id=order.id,
        customer_id=order.customer_id,
        kind=INVOICE_KIND_ORDER,
        status=invoice_status_for(order.amount_paid_cents, order.total_cents),
        issue_date=now,
        due_date=now + timedelta(days=7),
        subtotal_cents=order.subtotal_cents,
        tax_cents=order.tax_cents,
        total_cents=order.total_cents,
        amount_paid_cents=order.amount_paid_cents,
    )
    db.session.add(invoice)
    db.session.flush()
    return invoice


def _find_invoice(order_id: int, kind: str) -> Invoice | None:
    return db.session.query(Invoice).filter_by(order_id=order_id, kind=kind).first()


# =============================================================================
# ORDER CONFIRMATION
# =============================================================================

def _confirm_locked(quotation_id: int, address_id: int | None) -> ConfirmationResult:
    quotation = lock_for_update(db.session.query(Quotation).filter_by(id=quotation_id)).first()
    if quotation is None:
        raise QuotationNotFoundError(f"Quotation {quotation_id} not found")

    existing = db.session.query(RentalOrder).filter_by(quotation_id=quotation.id).first()
    if existing is not None:
        raise AlreadyConfirmedError(quotation.id, existing)
    if quotation.status != QUOTATION_DRAFT:
        raise ConflictError(f"Quotation {quotation.id} has status {quotation.status} but no order")

    lines = list(quotation.lines)

    # 1. Authoritative availability check, under lock
    plan = check_lines(lines, quotation.rental_start, quotation.rental_end, lock=True)

    # 2. Delivery address
    address = _resolve_address(quotation.customer_id, address_id)

    # 3. Order and immutable line snapshots
    now = utcnow()
    order = RentalOrder(
        order_number=next_document_number(DOC_ORDER, year=now.year),
        quotation_id=quotation.id,
        customer_id=quotation.customer_id,
        pickup_address_id=address.id,
        status=ORDER_CONFIRMED,
        subtotal_cents=quotation.subtotal_cents,
        discount_cents=quotation.discount_cents,
        tax_cents=quotation.tax_cents,
        total_cents=quotation.total_cents,
        # Confirmation only happens after the payment was verified upstream
        amount_paid_cents=quotation.total_cents,
        # A purchase-only order has no rental window to run late
        rental_start=quotation.rental_start if plan.has_rentals else None,
        rental_end=quotation.rental_end if plan.has_rentals else None,
    )
    db.session.add(order)
    db.session.flush()

    for position, line in enumerate(lines):
        db.session.add(OrderLine(
            order_id=order.id,
            product_id=line.product_id,
            position=position,
            line_type=line.line_type,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
        ))

    # 4. One reservation per product for RENTAL lines
    for product_id, quantity in plan.reservations:
        db.session.add(Reservation(
            order_id=order.id,
            product_id=product_id,
            quantity=quantity,
            from_date=quotation.rental_start,
            to_date=quotation.rental_end,
        ))

    # 5. SALE lines consume stock permanently
    for line in lines:
        if line.line_type != LINE_SALE:
            continue
        product = get_product(line.product_id)
        product.quantity_on_hand -= line.quantity
        db.session.add(StockMovement(
            product_id=line.product_id,
            quantity=-line.quantity,
            movement_type=MOVEMENT_SALE_DECREMENT,
            reference_type="ORDER",
            reference_id=order.id,
            remarks=f"Sold on order {order.order_number}",
            occurred_at=now,
        ))

    # 6. Invoice snapshot
    _new_order_invoice(order, now)

    # 7. Pickup for rented units
    if plan.has_rentals:
        pickup = Pickup(
            pickup_number=next_document_number(DOC_PICKUP, year=now.year),
            order_id=order.id,
            status=PICKUP_PENDING,
            pickup_date=quotation.rental_start,
        )
        db.session.add(pickup)
        db.session.flush()
        for product_id, quantity in plan.reservations:
            db.session.add(PickupItem(pickup_id=pickup.id, product_id=product_id, quantity=quantity))
        for line in lines:
            if line.line_type != LINE_RENTAL:
                continue
            db.session.add(StockMovement(
                product_id=line.product_id,
                quantity=-line.quantity,
                movement_type=MOVEMENT_PICKUP,
                reference_type="PICKUP",
                reference_id=pickup.id,
                remarks=f"Reserved for order {order.order_number}",
                occurred_at=now,
            ))

    # 8. Quotation is terminal from here on
    quotation.status = QUOTATION_CONFIRMED
    quotation.confirmed_at = now

    db.session.flush()
    return ConfirmationResult(order_id=order.id, order_number=order.order_number, created=True)


def confirm_quotation(quotation_id: int, address_id: int | None = None) -> ConfirmationResult:
    """
    Confirm a quotation into an order (idempotent).

    Raises:
        QuotationNotFoundError: quotation does not exist
        InsufficientStockError: a line cannot be fulfilled; nothing is written
        ValidationError: malformed lines, window or address
    """
    def _op() -> ConfirmationResult:
        begin_write_transaction()
        try:
            result = _confirm_locked(quotation_id, address_id)
            db.session.commit()
            return result
        except AlreadyConfirmedError as exc:
            db.session.rollback()
            current_app.logger.info("Quotation %s already confirmed as order %s", quotation_id, exc.order_id)
            return ConfirmationResult(order_id=exc.order_id, order_number=exc.order_number, created=False)
        except Exception:
            db.session.rollback()
            raise

    # IntegrityError covers a concurrent confirmation of the same quotation
    # winning the unique quotation_id; the retry then sees its order.
    result = run_with_retry(_op, retry_on=RETRYABLE_ERRORS + (IntegrityError,))

    if result.created:
        current_app.logger.info("Confirmed quotation %s as %s", quotation_id, result.order_number)
        _after_confirmation(result.order_id)
    return result


def _after_confirmation(order_id: int) -> None:
    """Best-effort notification and e-mail; failures are logged only."""
    try:
        begin_write_transaction()
        order = get_order(order_id)
        customer = db.session.get(User, order.customer_id)
        notify_once(
            order.customer_id,
            NOTIFICATION_ORDER_CONFIRMED,
            order.id,
            title=f"Order {order.order_number} confirmed",
            message=f"Your order {order.order_number} has been confirmed.",
        )
        db.session.commit()
        if customer is not None:
            subject, html = mail_templates.order_confirmation(
                order, customer, current_app.config.get("APP_BASE_URL", "")
            )
            send_email(customer.email, subject, html)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Post-confirmation side effects failed for order %s", order_id)


# =============================================================================
# INVOICES & PAYMENTS
# =============================================================================

def get_or_create_invoice(order_id: int) -> Invoice:
    """
    Return the order's invoice, creating it on first access.

    Converges with the invoice written at confirmation: the (order_id, kind)
    unique constraint plus retry guarantees a single ORDER invoice.
    """
    def _op() -> Invoice:
        get_order(order_id)
        invoice = _find_invoice(order_id, INVOICE_KIND_ORDER)
        if invoice is not None:
            return invoice

        begin_write_transaction()
        try:
            order = get_order(order_id, lock=True)
            invoice = _find_invoice(order_id, INVOICE_KIND_ORDER)
            if invoice is None:
                invoice = _new_order_invoice(order, utcnow())
                current_app.logger.info("Created invoice %s for order %s", invoice.invoice_number, order.order_number)
            db.session.commit()
            return invoice
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, retry_on=RETRYABLE_ERRORS + (IntegrityError,))


def record_payment(order_id: int, amount_cents, *, invoice_kind: str = INVOICE_KIND_ORDER) -> Invoice:
    """
    Apply an externally verified payment.

    ORDER payments raise both the order's and its invoice's paid amount;
    FEES payments settle the return fee invoice only. Invoice status is
    recomputed from paid vs total.
    """
    amount = require_amount_cents(amount_cents)
    if invoice_kind not in (INVOICE_KIND_ORDER, INVOICE_KIND_FEES):
        raise ValidationError(f"Unknown invoice kind {invoice_kind!r}")

    def _op() -> Invoice:
        begin_write_transaction()
        try:
            order = get_order(order_id, lock=True)
            invoice = _find_invoice(order.id, invoice_kind)
            if invoice_kind == INVOICE_KIND_ORDER:
                if invoice is None:
                    invoice = _new_order_invoice(order, utcnow())
                order.amount_paid_cents += amount
            elif invoice is None:
                raise ValidationError(f"Order {order.order_number} has no fee invoice")

            invoice.amount_paid_cents += amount
            invoice.status = invoice_status_for(invoice.amount_paid_cents, invoice.total_cents)
            db.session.commit()
            return invoice
        except Exception:
            db.session.rollback()
            raise

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Recorded payment of %s cents on invoice %s (%s)", amount, invoice.invoice_number, invoice.status
    )
    return invoice


# =============================================================================
# READ MODEL
# =============================================================================

def get_order_summary(order_id: int) -> dict:
    """
    Order with lines, invoices, pickup and return for display.

    Assembled from the core entities; reservations stay internal.
    """
    order = get_order(order_id)
    invoices = (
        db.session.query(Invoice)
        .filter_by(order_id=order.id)
        .order_by(Invoice.id.asc())
        .all()
    )
    return {
        "order": order.to_dict(),
        "lines": [line.to_dict() for line in order.lines],
        "invoices": [invoice.to_dict() for invoice in invoices],
        "pickup": order.pickup.to_dict() if order.pickup else None,
        "return": order.rental_return.to_dict() if order.rental_return else None,
    }
