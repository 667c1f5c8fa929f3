# Overview: Pickup dispatch; moves a pickup forward and marks the order as picked up.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Pickup
from ..models.orders import (
    ORDER_CONFIRMED,
    ORDER_OVERDUE,
    ORDER_PICKED_UP,
    PICKUP_COMPLETED,
    PICKUP_STATUS_ORDER,
)
from ..validation import ConflictError, NotFoundError, ValidationError
from rental_engine.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


class PickupError(ConflictError):
    """Illegal pickup transition."""
    pass


def get_pickup(pickup_id: int, *, lock: bool = False) -> Pickup:
    query = db.session.query(Pickup).filter_by(id=pickup_id)
    if lock:
        query = lock_for_update(query)
    pickup = query.first()
    if pickup is None:
        raise NotFoundError(f"Pickup {pickup_id} not found")
    return pickup


def update_pickup_status(pickup_id: int, status: str) -> Pickup:
    """
    PENDING -> READY -> COMPLETED, forward only (steps may be skipped).

    Completing a pickup moves a CONFIRMED or OVERDUE order to PICKED_UP.
    Setting the current status again is a no-op.
    """
    status = (status or "").upper()
    if status not in PICKUP_STATUS_ORDER:
        raise ValidationError(f"status must be one of {list(PICKUP_STATUS_ORDER)}")

    def _op() -> Pickup:
        begin_write_transaction()
        try:
            pickup = get_pickup(pickup_id, lock=True)
            current = PICKUP_STATUS_ORDER.index(pickup.status)
            target = PICKUP_STATUS_ORDER.index(status)
            if target < current:
                raise PickupError(f"Cannot move pickup {pickup.pickup_number} from {pickup.status} to {status}")
            if target > current:
                pickup.status = status
                if status == PICKUP_COMPLETED:
                    pickup.completed_at = utcnow()
                    order = pickup.order
                    if order.status in (ORDER_CONFIRMED, ORDER_OVERDUE):
                        order.status = ORDER_PICKED_UP
            db.session.commit()
            return pickup
        except Exception:
            db.session.rollback()
            raise

    pickup = run_with_retry(_op)
    current_app.logger.info("Pickup %s is %s", pickup.pickup_number, pickup.status)
    return pickup
