# Overview: Pytest coverage for the lifecycle sweep (reminders, overdue alerts, idempotency).

"""
Lifecycle Sweep Tests

Anchor: the sweep runs on 2030-06-05 at 09:00 UTC.
- an order ending 2030-06-07 is inside the 3-day reminder window
- an order ending 2030-06-03 is overdue (2 late days at 09:00 on the 5th)
"""

from datetime import date, datetime

import pytest

from rental_engine.models import Notification, RentalOrder, User
from rental_engine.models.catalog import ROLE_VENDOR
from rental_engine.models.notifications import NOTIFICATION_OVERDUE_ALERT, NOTIFICATION_RETURN_REMINDER
from rental_engine.models.orders import ORDER_CONFIRMED, ORDER_OVERDUE, ORDER_PICKED_UP
from rental_engine.models.quotations import LINE_SALE
from rental_engine.services import order_service, pickup_service, return_service, sweep_service


NOW = datetime(2030, 6, 5, 9, 0)
NEXT_DAY = datetime(2030, 6, 6, 9, 0)


@pytest.fixture
def confirm(make_product, make_quotation, window):
    """confirm(start_day, end_day, product=None, unit_price=30000) -> RentalOrder id."""
    def _confirm(start_day, end_day, product=None, unit_price=30000):
        product = product or make_product(quantity_on_hand=5)
        start, end = window(start_day, end_day)
        quotation = make_quotation([(product, 1, "RENTAL", unit_price)], start, end)
        return order_service.confirm_quotation(quotation.id).order_id

    return _confirm


def notifications(db_session, notification_type):
    return db_session.query(Notification).filter_by(type=notification_type).all()


class TestReturnReminders:

    def test_reminder_sent_once_per_day(self, db_session, confirm, customer, outbox):
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 7))
        outbox.clear()

        first = sweep_service.run_lifecycle_sweep(now=NOW)
        second = sweep_service.run_lifecycle_sweep(now=NOW.replace(hour=17))

        assert first.reminders_sent == 1
        assert second.reminders_sent == 0
        reminders = notifications(db_session, NOTIFICATION_RETURN_REMINDER)
        assert [(n.user_id, n.reference_id) for n in reminders] == [(customer.id, order_id)]
        assert len(outbox) == 1
        assert "Return Reminder" in outbox[0]["subject"]
        assert "2 days" in outbox[0]["html"]

    def test_reminder_repeats_on_the_next_day(self, db_session, confirm):
        confirm(date(2030, 6, 1), date(2030, 6, 7))

        sweep_service.run_lifecycle_sweep(now=NOW)
        result = sweep_service.run_lifecycle_sweep(now=NEXT_DAY)

        assert result.reminders_sent == 1
        assert len(notifications(db_session, NOTIFICATION_RETURN_REMINDER)) == 2

    def test_picked_up_orders_are_reminded(self, db_session, confirm):
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 6))
        order = db_session.get(RentalOrder, order_id)
        pickup_service.update_pickup_status(order.pickup.id, "COMPLETED")
        assert db_session.get(RentalOrder, order_id).status == ORDER_PICKED_UP

        assert sweep_service.run_lifecycle_sweep(now=NOW).reminders_sent == 1

    def test_orders_ending_later_are_not_reminded(self, db_session, confirm):
        confirm(date(2030, 6, 1), date(2030, 6, 20))

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        assert result.reminders_sent == 0
        assert notifications(db_session, NOTIFICATION_RETURN_REMINDER) == []

    def test_returned_orders_are_skipped(self, db_session, confirm, make_product):
        product = make_product(quantity_on_hand=1)
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 3), product=product)
        return_service.process_return(order_id, [{"product_id": product.id, "quantity": 1}], returned_at=NOW)

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        assert result.to_dict() == {
            "reminders_sent": 0,
            "overdue_alerts_sent": 0,
            "orders_marked_overdue": 0,
            "errors": [],
        }


class TestOverdueAlerts:

    def test_overdue_order_marked_and_alerted(self, db_session, confirm, customer, vendor, outbox):
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 3))
        outbox.clear()

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        assert result.orders_marked_overdue == 1
        assert result.overdue_alerts_sent == 1
        assert db_session.get(RentalOrder, order_id).status == ORDER_OVERDUE

        alerts = notifications(db_session, NOTIFICATION_OVERDUE_ALERT)
        assert sorted(n.user_id for n in alerts) == sorted([customer.id, vendor.id])
        assert all(n.is_urgent for n in alerts)

        # 30000 over 3 days, 2 days late: 2 * 10000 * 10%
        customer_alert = next(n for n in alerts if n.user_id == customer.id)
        assert "20.00" in customer_alert.message
        assert len(outbox) == 1
        assert outbox[0]["subject"].startswith("URGENT")

    def test_overdue_sweep_is_idempotent_within_a_day(self, db_session, confirm, outbox):
        confirm(date(2030, 6, 1), date(2030, 6, 3))
        outbox.clear()

        sweep_service.run_lifecycle_sweep(now=NOW)
        again = sweep_service.run_lifecycle_sweep(now=NOW.replace(hour=21))

        assert again.orders_marked_overdue == 0
        assert again.overdue_alerts_sent == 0
        assert len(notifications(db_session, NOTIFICATION_OVERDUE_ALERT)) == 2
        assert len(outbox) == 1

    def test_overdue_alert_repeats_daily(self, db_session, confirm):
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 3))

        sweep_service.run_lifecycle_sweep(now=NOW)
        result = sweep_service.run_lifecycle_sweep(now=NEXT_DAY)

        assert result.orders_marked_overdue == 0
        assert result.overdue_alerts_sent == 1
        assert db_session.get(RentalOrder, order_id).status == ORDER_OVERDUE

    def test_purchase_only_order_is_never_overdue(self, db_session, make_product, make_quotation, window, outbox):
        product = make_product(quantity_on_hand=3)
        start, end = window(date(2030, 6, 1), date(2030, 6, 3))
        order_id = order_service.confirm_quotation(
            make_quotation([(product, 1, LINE_SALE, 50000)], start, end).id
        ).order_id
        outbox.clear()

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        order = db_session.get(RentalOrder, order_id)
        assert order.status == ORDER_CONFIRMED
        assert order.rental_end is None
        assert result.orders_marked_overdue == 0
        assert result.overdue_alerts_sent == 0
        assert notifications(db_session, NOTIFICATION_OVERDUE_ALERT) == []
        assert outbox == []

    def test_one_alert_per_distinct_vendor(self, db_session, make_product, make_quotation, window, customer, vendor):
        other_vendor = User(name="Otto Vendor", email="otto@example.com", role=ROLE_VENDOR)
        db_session.add(other_vendor)
        db_session.commit()

        first = make_product(quantity_on_hand=2)
        second = make_product(quantity_on_hand=2)
        third = make_product(quantity_on_hand=2, vendor_id=other_vendor.id)
        start, end = window(date(2030, 6, 1), date(2030, 6, 3))
        quotation = make_quotation([(first, 1), (second, 1), (third, 1)], start, end)
        order_service.confirm_quotation(quotation.id)

        sweep_service.run_lifecycle_sweep(now=NOW)

        alerts = notifications(db_session, NOTIFICATION_OVERDUE_ALERT)
        assert sorted(n.user_id for n in alerts) == sorted([customer.id, vendor.id, other_vendor.id])

    def test_estimate_matches_return_charge(self, db_session, confirm, make_product):
        product = make_product(quantity_on_hand=1)
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 3), product=product)

        sweep_service.run_lifecycle_sweep(now=NOW)
        rental_return = return_service.process_return(
            order_id, [{"product_id": product.id, "quantity": 1}], returned_at=NOW
        )

        assert rental_return.late_days == 2
        assert rental_return.late_fee_cents == 2000


class TestSweepFailures:

    def test_failure_on_one_order_does_not_stop_the_sweep(self, db_session, confirm, monkeypatch):
        broken_id = confirm(date(2030, 6, 1), date(2030, 6, 6))
        healthy_id = confirm(date(2030, 6, 1), date(2030, 6, 7))
        real_notify_once = sweep_service.notify_once

        def flaky_notify_once(user_id, notification_type, reference_id, **kwargs):
            if reference_id == broken_id:
                raise RuntimeError("notification store unavailable")
            return real_notify_once(user_id, notification_type, reference_id, **kwargs)

        monkeypatch.setattr(sweep_service, "notify_once", flaky_notify_once)

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        assert result.reminders_sent == 1
        assert len(result.errors) == 1
        assert "notification store unavailable" in result.errors[0]
        reminders = notifications(db_session, NOTIFICATION_RETURN_REMINDER)
        assert [n.reference_id for n in reminders] == [healthy_id]

    def test_mail_failure_is_collected(self, db_session, app, confirm, monkeypatch):
        confirm(date(2030, 6, 1), date(2030, 6, 7))

        def broken_send(to, subject, html):
            raise RuntimeError("SMTP relay down")

        monkeypatch.setattr(app.extensions["mailer"], "send", broken_send)

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        assert result.reminders_sent == 1
        assert len(result.errors) == 1
        # The notification stands; tomorrow's run tries again
        assert len(notifications(db_session, NOTIFICATION_RETURN_REMINDER)) == 1

    def test_overdue_status_kept_when_alerting_fails(self, db_session, confirm, monkeypatch):
        order_id = confirm(date(2030, 6, 1), date(2030, 6, 3))

        def broken_notify_once(*args, **kwargs):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(sweep_service, "notify_once", broken_notify_once)

        result = sweep_service.run_lifecycle_sweep(now=NOW)

        assert result.orders_marked_overdue == 1
        assert result.overdue_alerts_sent == 0
        assert len(result.errors) == 1
        db_session.expire_all()
        assert db_session.get(RentalOrder, order_id).status == ORDER_OVERDUE
        assert notifications(db_session, NOTIFICATION_OVERDUE_ALERT) == []
