# Overview: Scheduled lifecycle sweep; return reminders, overdue reclassification and alerts.

"""
Lifecycle Sweep

Two independent scans over open rental orders, anchored at the start of
the UTC day of `now`:

    upcoming:  status in (CONFIRMED, PICKED_UP), no return,
               today <= rental_end < today + (REMINDER_WINDOW_DAYS + 1) days
    overdue:   status in (CONFIRMED, PICKED_UP, OVERDUE), no return,
               rental_end < today

Every order is handled in its own transaction. The OVERDUE status change
is committed ahead of the alerts, so a failed alert leaves it in place.
At most one notification per (user, type, order) per calendar day;
running the sweep twice on the same day sends nothing the second time.
A failure on one order is logged and collected in SweepResult.errors;
the sweep carries on with the next.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Product, RentalOrder, Return, User
from ..models.notifications import NOTIFICATION_OVERDUE_ALERT, NOTIFICATION_RETURN_REMINDER
from ..models.orders import ORDER_CONFIRMED, ORDER_OVERDUE, ORDER_PICKED_UP, OPEN_ORDER_STATUSES
from rental_engine.time_utils import start_of_day, utcnow
from . import mail_templates
from .concurrency import begin_write_transaction
from .fee_service import late_fee_for_order
from .mail_service import send_email
from .notification_service import notify_once
from .order_service import get_order


REMINDER_STATUSES = (ORDER_CONFIRMED, ORDER_PICKED_UP)


@dataclass
class SweepResult:
    reminders_sent: int = 0
    overdue_alerts_sent: int = 0
    orders_marked_overdue: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "reminders_sent": self.reminders_sent,
            "overdue_alerts_sent": self.overdue_alerts_sent,
            "orders_marked_overdue": self.orders_marked_overdue,
            "errors": list(self.errors),
        }


def _open_order_ids(statuses, *, end_from: datetime | None = None, end_before: datetime) -> list[int]:
    q = (
        db.session.query(RentalOrder.id)
        .outerjoin(Return, Return.order_id == RentalOrder.id)
        .filter(
            RentalOrder.status.in_(statuses),
            Return.id.is_(None),
            RentalOrder.rental_end.isnot(None),
            RentalOrder.rental_end < end_before,
        )
    )
    if end_from is not None:
        q = q.filter(RentalOrder.rental_end >= end_from)
    return [row[0] for row in q.order_by(RentalOrder.id.asc()).all()]


def _order_vendor_ids(order: RentalOrder) -> list[int]:
    product_ids = {line.product_id for line in order.lines}
    if not product_ids:
        return []
    rows = (
        db.session.query(Product.vendor_id)
        .filter(Product.id.in_(product_ids), Product.vendor_id.isnot(None))
        .distinct()
        .all()
    )
    return sorted(row[0] for row in rows)


def _still_open(order: RentalOrder, statuses) -> bool:
    return order.status in statuses and order.rental_return is None


def _remind(order_id: int, today: datetime, now: datetime, result: SweepResult) -> None:
    begin_write_transaction()
    order = get_order(order_id, lock=True)
    if not _still_open(order, REMINDER_STATUSES):
        db.session.rollback()
        return

    days_left = (order.rental_end.date() - today.date()).days
    notification = notify_once(
        order.customer_id,
        NOTIFICATION_RETURN_REMINDER,
        order.id,
        title=f"Return due for {order.order_number}",
        message=f"Your rental {order.order_number} is due back in {days_left} day(s).",
        now=now,
    )
    db.session.commit()
    if notification is None:
        return

    result.reminders_sent += 1
    customer = db.session.get(User, order.customer_id)
    subject, html = mail_templates.return_reminder(
        order, customer, days_left, current_app.config.get("APP_BASE_URL", "")
    )
    if not send_email(customer.email, subject, html):
        result.errors.append(f"Order {order.order_number}: reminder e-mail to {customer.email} failed")


def _flag_overdue(order_id: int, now: datetime, result: SweepResult) -> None:
    begin_write_transaction()
    order = get_order(order_id, lock=True)
    if not _still_open(order, OPEN_ORDER_STATUSES):
        db.session.rollback()
        return

    if order.status != ORDER_OVERDUE:
        order.status = ORDER_OVERDUE
        db.session.commit()
        result.orders_marked_overdue += 1
        begin_write_transaction()
        order = get_order(order_id, lock=True)
        if not _still_open(order, OPEN_ORDER_STATUSES):
            db.session.rollback()
            return

    late = late_fee_for_order(order, now)
    notification = notify_once(
        order.customer_id,
        NOTIFICATION_OVERDUE_ALERT,
        order.id,
        title=f"Order {order.order_number} is overdue",
        message=(
            f"Your rental {order.order_number} is {late.late_days} day(s) overdue. "
            f"Current late fee: {late.late_fee_cents / 100:.2f}"
        ),
        is_urgent=True,
        now=now,
    )
    vendor_ids = []
    if notification is not None:
        vendor_ids = _order_vendor_ids(order)
        for vendor_id in vendor_ids:
            notify_once(
                vendor_id,
                NOTIFICATION_OVERDUE_ALERT,
                order.id,
                title=f"Overdue rental {order.order_number}",
                message=f"Order {order.order_number} with your products is {late.late_days} day(s) overdue.",
                is_urgent=True,
                now=now,
            )
    db.session.commit()
    if notification is None:
        return

    result.overdue_alerts_sent += 1
    current_app.logger.info(
        "Order %s overdue by %s day(s); alerted customer and %s vendor(s)",
        order.order_number,
        late.late_days,
        len(vendor_ids),
    )
    customer = db.session.get(User, order.customer_id)
    subject, html = mail_templates.overdue_alert(
        order, customer, late.late_days, late.late_fee_cents, current_app.config.get("APP_BASE_URL", "")
    )
    if not send_email(customer.email, subject, html):
        result.errors.append(f"Order {order.order_number}: overdue e-mail to {customer.email} failed")


def run_lifecycle_sweep(now: datetime | None = None) -> SweepResult:
    """Run both scans once. Never raises for per-order failures."""
    now = now or utcnow()
    today = start_of_day(now)
    window_days = current_app.config.get("REMINDER_WINDOW_DAYS", 3)
    result = SweepResult()

    upcoming = _open_order_ids(
        REMINDER_STATUSES,
        end_from=today,
        end_before=today + timedelta(days=window_days + 1),
    )
    for order_id in upcoming:
        try:
            _remind(order_id, today, now, result)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Return reminder failed for order %s", order_id)
            result.errors.append(f"Order {order_id}: {exc}")

    overdue = _open_order_ids(OPEN_ORDER_STATUSES, end_before=today)
    for order_id in overdue:
        try:
            _flag_overdue(order_id, now, result)
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Overdue processing failed for order %s", order_id)
            result.errors.append(f"Order {order_id}: {exc}")

    current_app.logger.info(
        "Lifecycle sweep at %s: %s reminder(s), %s overdue alert(s), %s marked overdue, %s error(s)",
        now.isoformat(),
        result.reminders_sent,
        result.overdue_alerts_sent,
        result.orders_marked_overdue,
        len(result.errors),
    )
    return result
