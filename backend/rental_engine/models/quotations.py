from __future__ import annotations

from ..extensions import db
from rental_engine.time_utils import to_utc_z


QUOTATION_DRAFT = "DRAFT"
QUOTATION_CONFIRMED = "CONFIRMED"

LINE_RENTAL = "RENTAL"
LINE_SALE = "SALE"
VALID_LINE_TYPES = {LINE_RENTAL, LINE_SALE}


class Quotation(db.Model):
    """
    Priced, not-yet-binding cart snapshot built by checkout.

    Every RENTAL line shares the single [rental_start, rental_end] window.
    DRAFT -> CONFIRMED happens exactly once, inside order confirmation.
    """
    __tablename__ = "quotations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=QUOTATION_DRAFT, index=True)

    rental_start = db.Column(db.DateTime(timezone=True), nullable=True)
    rental_end = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("User")
    lines = db.relationship(
        "QuotationLine",
        backref="quotation",
        lazy=True,
        order_by="QuotationLine.position",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "status": self.status,
            "rental_start": to_utc_z(self.rental_start),
            "rental_end": to_utc_z(self.rental_end),
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class QuotationLine(db.Model):
    """Line of a quotation; position keeps the order checkout produced."""
    __tablename__ = "quotation_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_quotation_lines_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    line_type = db.Column(db.String(16), nullable=False, default=LINE_RENTAL)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "product_id": self.product_id,
            "position": self.position,
            "line_type": self.line_type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
