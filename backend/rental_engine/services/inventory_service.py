# Overview: Inventory ledger; answers "how many units of a product are free in a window".

# backend/rental_engine/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Reservation
from ..validation import NotFoundError, validate_window
from .concurrency import lock_for_update
"""
Inventory Invariants (authoritative)

Stock model:
- Product.quantity_on_hand is the number of physical units owned.
- Rentals never change quantity_on_hand; they claim units through
  Reservation rows for a window.
- Purchases decrement quantity_on_hand permanently (no reservation), never
  below the peak quantity still reserved from now on.

Availability:
- available(P, from, to) = quantity_on_hand(P) - SUM(quantity) over active
  reservations of P whose window overlaps [from, to].
- Overlap is closed-interval intersection: existing.from <= to AND
  existing.to >= from. Touching boundaries overlap, so back-to-back
  rentals conflict (handoff/cleaning time is not modelled).
- Released reservations (released_at set) never count.

Reads here are advisory when made outside a write transaction; the
authoritative check runs again inside order confirmation.
"""


class InsufficientStockError(ValueError):
    """Requested quantity exceeds what is free for the product."""

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available

    @property
    def details(self) -> dict:
        return {
            "product_id": self.product_id,
            "requested": self.requested,
            "available": self.available,
        }


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def reserved_quantity(
    product_id: int,
    from_date: datetime,
    to_date: datetime,
    *,
    exclude_order_id: int | None = None,
) -> int:
    """Sum of active reservation quantities overlapping [from_date, to_date]."""
    validate_window(from_date, to_date)
    q = db.session.query(func.coalesce(func.sum(Reservation.quantity), 0)).filter(
        Reservation.product_id == product_id,
        Reservation.released_at.is_(None),
        Reservation.from_date <= to_date,
        Reservation.to_date >= from_date,
    )
    if exclude_order_id is not None:
        q = q.filter(Reservation.order_id != exclude_order_id)
    return int(q.scalar() or 0)


def available_quantity(
    product_id: int,
    from_date: datetime,
    to_date: datetime,
    *,
    exclude_order_id: int | None = None,
) -> int:
    """
    Units of product_id free during [from_date, to_date].

    Negative only if quantity_on_hand was lowered outside the engine;
    callers compare requested quantities against it directly.
    """
    product = get_product(product_id)
    overlap = reserved_quantity(
        product_id,
        from_date,
        to_date,
        exclude_order_id=exclude_order_id,
    )
    return product.quantity_on_hand - overlap


def active_reservations(product_id: int) -> list[Reservation]:
    return (
        db.session.query(Reservation)
        .filter(Reservation.product_id == product_id, Reservation.released_at.is_(None))
        .order_by(Reservation.from_date.asc(), Reservation.id.asc())
        .all()
    )


def peak_reserved_quantity(product_id: int, as_of: datetime) -> int:
    """
    Highest total held by active reservations of product_id at any single
    instant from as_of onward. Reservations that ended before as_of are ignored.
    """
    rows = (
        db.session.query(Reservation.from_date, Reservation.to_date, Reservation.quantity)
        .filter(
            Reservation.product_id == product_id,
            Reservation.released_at.is_(None),
            Reservation.to_date >= as_of,
        )
        .all()
    )
    # The peak of a set of closed intervals is reached at one of their start points
    peak = 0
    for from_date, _, _ in rows:
        instant = max(from_date, as_of)
        held = sum(qty for start, end, qty in rows if start <= instant <= end)
        peak = max(peak, held)
    return peak


def sellable_quantity(product_id: int, as_of: datetime) -> int:
    """Units of product_id that can be sold outright without breaking a reservation."""
    product = get_product(product_id)
    return product.quantity_on_hand - peak_reserved_quantity(product_id, as_of)
