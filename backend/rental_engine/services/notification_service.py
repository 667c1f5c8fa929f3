# Overview: Once-per-day notifications keyed by (user, type, reference, day).

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Notification
from ..models.notifications import REFERENCE_ORDER
from rental_engine.time_utils import day_bucket, utcnow


def already_notified(
    user_id: int,
    notification_type: str,
    reference_id: int,
    *,
    on: datetime | None = None,
    reference_type: str = REFERENCE_ORDER,
) -> bool:
    bucket = day_bucket(on or utcnow())
    return db.session.query(
        db.session.query(Notification)
        .filter_by(
            user_id=user_id,
            type=notification_type,
            reference_type=reference_type,
            reference_id=reference_id,
            day_bucket=bucket,
        )
        .exists()
    ).scalar()


def notify_once(
    user_id: int,
    notification_type: str,
    reference_id: int,
    *,
    title: str,
    message: str,
    is_urgent: bool = False,
    now: datetime | None = None,
    reference_type: str = REFERENCE_ORDER,
) -> Notification | None:
    """
    Create the day's notification for this key, or return None if it exists.

    The pre-check avoids a write in the common case; the unique constraint
    settles races between two sweeps running at the same time. The insert
    runs in a savepoint so losing the race does not discard the caller's
    other work. Caller commits.
    """
    now = now or utcnow()
    if already_notified(user_id, notification_type, reference_id, on=now, reference_type=reference_type):
        return None

    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        is_urgent=is_urgent,
        reference_type=reference_type,
        reference_id=reference_id,
        created_at=now,
        day_bucket=day_bucket(now),
    )
    try:
        with db.session.begin_nested():
            db.session.add(notification)
    except IntegrityError:
        return None
    return notification
