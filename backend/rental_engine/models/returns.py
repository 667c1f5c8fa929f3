from __future__ import annotations

from ..extensions import db
from rental_engine.time_utils import to_utc_z


CONDITION_GOOD = "GOOD"
CONDITION_DAMAGED = "DAMAGED"
VALID_CONDITIONS = {CONDITION_GOOD, CONDITION_DAMAGED}


class Return(db.Model):
    """
    Closing record of a rental order.

    One per order (unique order_id); its existence marks the order's
    reservations as released.
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(32), nullable=False, unique=True)
    order_id = db.Column(db.Integer, db.ForeignKey("rental_orders.id"), nullable=False, unique=True)

    return_date = db.Column(db.DateTime(timezone=True), nullable=False)
    late_days = db.Column(db.Integer, nullable=False, default=0)
    late_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    damage_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("RentalOrder", backref=db.backref("rental_return", uselist=False))
    items = db.relationship("ReturnItem", backref="rental_return", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "order_id": self.order_id,
            "return_date": to_utc_z(self.return_date),
            "late_days": self.late_days,
            "late_fee_cents": self.late_fee_cents,
            "damage_fee_cents": self.damage_fee_cents,
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(16), nullable=False, default=CONDITION_GOOD)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "condition": self.condition,
        }
