from __future__ import annotations

from ..extensions import db
from rental_engine.time_utils import to_utc_z


ORDER_CONFIRMED = "CONFIRMED"
ORDER_PICKED_UP = "PICKED_UP"
ORDER_RETURNED = "RETURNED"
ORDER_OVERDUE = "OVERDUE"
OPEN_ORDER_STATUSES = (ORDER_CONFIRMED, ORDER_PICKED_UP, ORDER_OVERDUE)

INVOICE_DRAFT = "DRAFT"
INVOICE_PARTIAL = "PARTIAL"
INVOICE_PAID = "PAID"

INVOICE_KIND_ORDER = "ORDER"
INVOICE_KIND_FEES = "FEES"

PICKUP_PENDING = "PENDING"
PICKUP_READY = "READY"
PICKUP_COMPLETED = "COMPLETED"
PICKUP_STATUS_ORDER = (PICKUP_PENDING, PICKUP_READY, PICKUP_COMPLETED)


class RentalOrder(db.Model):
    """
    Binding commitment created from exactly one quotation.

    Never deleted; status moves CONFIRMED -> PICKED_UP -> RETURNED, with
    OVERDUE set by the lifecycle sweep for unreturned rentals.
    """
    __tablename__ = "rental_orders"
    __table_args__ = (
        db.Index("ix_rental_orders_status_end", "status", "rental_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "ORD-2025-0001"
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    pickup_address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_CONFIRMED, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    rental_start = db.Column(db.DateTime(timezone=True), nullable=True)
    rental_end = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    quotation = db.relationship("Quotation", backref=db.backref("order", uselist=False))
    customer = db.relationship("User")
    pickup_address = db.relationship("Address")
    lines = db.relationship("OrderLine", backref="order", lazy=True, order_by="OrderLine.position")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "quotation_id": self.quotation_id,
            "customer_id": self.customer_id,
            "pickup_address_id": self.pickup_address_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "rental_start": to_utc_z(self.rental_start),
            "rental_end": to_utc_z(self.rental_end),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    """Immutable snapshot of a quotation line, scoped to one order."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("rental_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    line_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "position": self.position,
            "line_type": self.line_type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Reservation(db.Model):
    """
    Claim on `quantity` units of a product for [from_date, to_date].

    Only active rows (released_at IS NULL) count toward availability.
    RENTAL lines are coalesced per product, so an order holds at most one
    reservation per product.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_reservations_order_product"),
        db.CheckConstraint("quantity > 0", name="ck_reservations_qty_positive"),
        db.Index("ix_reservations_product_window", "product_id", "from_date", "to_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("rental_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    from_date = db.Column(db.DateTime(timezone=True), nullable=False)
    to_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    released_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    order = db.relationship("RentalOrder", backref=db.backref("reservations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "from_date": to_utc_z(self.from_date),
            "to_date": to_utc_z(self.to_date),
            "released_at": to_utc_z(self.released_at),
        }


class Invoice(db.Model):
    """
    Financial document for an order.

    One ORDER invoice per order (created at confirmation or lazily on first
    read); a FEES invoice is added when a return carries late/damage fees.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("order_id", "kind", name="uq_invoices_order_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(40), nullable=False, unique=True)

    order_id = db.Column(db.Integer, db.ForeignKey("rental_orders.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, default=INVOICE_KIND_ORDER)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_DRAFT, index=True)
    issue_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("RentalOrder", backref=db.backref("invoices", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "kind": self.kind,
            "status": self.status,
            "issue_date": to_utc_z(self.issue_date),
            "due_date": to_utc_z(self.due_date),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "notes": self.notes,
        }


class Pickup(db.Model):
    """Dispatch record listing the rented units to hand over."""
    __tablename__ = "pickups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pickup_number = db.Column(db.String(32), nullable=False, unique=True)
    order_id = db.Column(db.Integer, db.ForeignKey("rental_orders.id"), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default=PICKUP_PENDING, index=True)
    pickup_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("RentalOrder", backref=db.backref("pickup", uselist=False))
    items = db.relationship("PickupItem", backref="pickup", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pickup_number": self.pickup_number,
            "order_id": self.order_id,
            "status": self.status,
            "pickup_date": to_utc_z(self.pickup_date),
            "completed_at": to_utc_z(self.completed_at),
            "items": [item.to_dict() for item in self.items],
        }


class PickupItem(db.Model):
    __tablename__ = "pickup_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pickup_id = db.Column(db.Integer, db.ForeignKey("pickups.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pickup_id": self.pickup_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
