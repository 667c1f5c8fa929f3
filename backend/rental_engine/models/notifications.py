from __future__ import annotations

from ..extensions import db
from rental_engine.time_utils import to_utc_z


NOTIFICATION_RETURN_REMINDER = "RETURN_REMINDER"
NOTIFICATION_OVERDUE_ALERT = "OVERDUE_ALERT"
NOTIFICATION_ORDER_CONFIRMED = "ORDER_CONFIRMED"

REFERENCE_ORDER = "ORDER"


class Notification(db.Model):
    """
    In-app notification keyed for once-per-day delivery.

    (user_id, type, reference_type, reference_id, day_bucket) is unique, so a
    second sweep on the same day cannot insert a duplicate even if it
    races the first one.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "type", "reference_type", "reference_id", "day_bucket",
            name="uq_notifications_daily_key",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_urgent = db.Column(db.Boolean, nullable=False, default=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    reference_type = db.Column(db.String(32), nullable=False, default=REFERENCE_ORDER)
    reference_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    day_bucket = db.Column(db.Date, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "is_urgent": self.is_urgent,
            "is_read": self.is_read,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
            "day_bucket": self.day_bucket.isoformat() if self.day_bucket else None,
        }
