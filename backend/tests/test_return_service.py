# Overview: Pytest coverage for return processing, settlement fees and reservation release.

from datetime import date, datetime, timedelta

import pytest

from rental_engine.models import Invoice, Pickup, RentalOrder, Reservation, Return, StockMovement
from rental_engine.models.ledger import MOVEMENT_RETURN
from rental_engine.models.orders import (
    INVOICE_DRAFT,
    INVOICE_KIND_FEES,
    INVOICE_PAID,
    INVOICE_PARTIAL,
    ORDER_RETURNED,
    PICKUP_COMPLETED,
)
from rental_engine.models.quotations import LINE_SALE
from rental_engine.services import inventory_service, order_service, return_service
from rental_engine.services.order_service import OrderNotFoundError
from rental_engine.services.return_service import ReturnError
from rental_engine.validation import ValidationError


# 7-day rental, June 1 00:00 to June 7 23:59:59
RENTAL_DAYS = (date(2030, 6, 1), date(2030, 6, 7))
ON_TIME = datetime(2030, 6, 7, 18, 0)
THREE_DAYS_LATE = datetime(2030, 6, 10, 12, 0)


@pytest.fixture
def rented(db_session, make_product, make_quotation, window):
    """A confirmed order renting 2 units at 35000 each (subtotal 70000 cents)."""
    product = make_product(quantity_on_hand=2)
    start, end = window(*RENTAL_DAYS)
    quotation = make_quotation([(product, 2, "RENTAL", 35000)], start, end)
    result = order_service.confirm_quotation(quotation.id)
    return product, db_session.get(RentalOrder, result.order_id)


def good(product, quantity=2):
    return [{"product_id": product.id, "quantity": quantity, "condition": "GOOD"}]


class TestLateFees:

    def test_three_days_late_charges_ten_percent_of_daily_rate(self, db_session, rented):
        """subtotal 700.00 over 7 days, 3 days late -> 3 * 100.00 * 10% = 30.00"""
        product, order = rented

        rental_return = return_service.process_return(order.id, good(product), returned_at=THREE_DAYS_LATE)

        assert rental_return.late_days == 3
        assert rental_return.late_fee_cents == 3000
        assert rental_return.damage_fee_cents == 0

    def test_on_time_return_has_no_fees(self, db_session, rented):
        product, order = rented

        rental_return = return_service.process_return(order.id, good(product), returned_at=ON_TIME)

        assert rental_return.late_days == 0
        assert rental_return.late_fee_cents == 0
        assert db_session.query(Invoice).filter_by(order_id=order.id, kind=INVOICE_KIND_FEES).count() == 0

    def test_late_return_raises_fee_invoice(self, db_session, app, rented):
        product, order = rented

        rental_return = return_service.process_return(
            order.id, good(product), returned_at=THREE_DAYS_LATE
        )

        invoice = db_session.query(Invoice).filter_by(order_id=order.id, kind=INVOICE_KIND_FEES).one()
        assert invoice.status == INVOICE_DRAFT
        assert invoice.subtotal_cents == 3000
        assert invoice.tax_cents == 540  # 18%
        assert invoice.total_cents == 3540
        assert invoice.issue_date == THREE_DAYS_LATE
        assert invoice.due_date == THREE_DAYS_LATE + timedelta(days=app.config["FEE_INVOICE_DUE_DAYS"])
        assert rental_return.return_number in invoice.notes


class TestDamageFees:

    def test_damage_fee_uses_policy_rate(self, db_session, rented):
        """Half of the damaged share of the rented line value."""
        product, order = rented
        items = [
            {"product_id": product.id, "quantity": 1, "condition": "GOOD"},
            {"product_id": product.id, "quantity": 1, "condition": "DAMAGED"},
        ]

        rental_return = return_service.process_return(order.id, items, returned_at=ON_TIME)

        assert rental_return.damage_fee_cents == 17500
        invoice = db_session.query(Invoice).filter_by(order_id=order.id, kind=INVOICE_KIND_FEES).one()
        assert invoice.subtotal_cents == 17500

    def test_damage_fee_override(self, db_session, rented):
        product, order = rented
        items = [{"product_id": product.id, "quantity": 2, "condition": "DAMAGED"}]

        rental_return = return_service.process_return(
            order.id, items, damage_fee_cents=1234, returned_at=ON_TIME
        )

        assert rental_return.damage_fee_cents == 1234

    def test_zero_rate_leaves_damage_to_manual_adjustment(self, db_session, app, rented, monkeypatch):
        monkeypatch.setitem(app.config, "DAMAGE_FEE_RATE_BPS", 0)
        product, order = rented
        items = [{"product_id": product.id, "quantity": 2, "condition": "DAMAGED"}]

        rental_return = return_service.process_return(order.id, items, returned_at=ON_TIME)

        assert rental_return.damage_fee_cents == 0

    def test_negative_override_rejected(self, db_session, rented):
        product, order = rented
        with pytest.raises(ValidationError):
            return_service.process_return(order.id, good(product), damage_fee_cents=-1)


class TestReturnEffects:

    def test_return_closes_order_and_releases_units(self, db_session, rented, window):
        product, order = rented
        start, end = window(*RENTAL_DAYS)
        assert inventory_service.available_quantity(product.id, start, end) == 0

        rental_return = return_service.process_return(order.id, good(product), returned_at=ON_TIME)

        assert db_session.get(RentalOrder, order.id).status == ORDER_RETURNED
        assert db_session.query(Pickup).filter_by(order_id=order.id).one().status == PICKUP_COMPLETED
        reservation = db_session.query(Reservation).filter_by(order_id=order.id).one()
        assert reservation.released_at is not None
        assert inventory_service.available_quantity(product.id, start, end) == 2

        movement = db_session.query(StockMovement).filter_by(movement_type=MOVEMENT_RETURN).one()
        assert movement.quantity == 2
        assert movement.reference_id == rental_return.id

    def test_returned_units_can_be_booked_again(self, db_session, rented, make_quotation, window):
        product, order = rented
        return_service.process_return(order.id, good(product), returned_at=ON_TIME)

        start, end = window(*RENTAL_DAYS)
        result = order_service.confirm_quotation(make_quotation([(product, 2)], start, end).id)

        assert result.created is True

    def test_second_return_rejected(self, db_session, rented):
        product, order = rented
        return_service.process_return(order.id, good(product), returned_at=ON_TIME)

        with pytest.raises(ReturnError, match="already processed"):
            return_service.process_return(order.id, good(product), returned_at=ON_TIME)

        assert db_session.query(Return).count() == 1

    def test_partial_quantity_allowed(self, db_session, rented):
        product, order = rented
        rental_return = return_service.process_return(order.id, good(product, 1), returned_at=ON_TIME)
        assert [item.quantity for item in rental_return.items] == [1]


class TestReturnValidation:

    def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            return_service.process_return(31337, [{"product_id": 1, "quantity": 1}])

    def test_sale_lines_not_returnable(self, db_session, make_product, make_quotation):
        product = make_product(quantity_on_hand=3)
        result = order_service.confirm_quotation(make_quotation([(product, 1, LINE_SALE)]).id)

        with pytest.raises(ReturnError):
            return_service.process_return(result.order_id, good(product, 1))

        assert db_session.query(Return).count() == 0

    def test_cannot_return_more_than_rented(self, db_session, rented):
        product, order = rented
        with pytest.raises(ReturnError):
            return_service.process_return(order.id, good(product, 3), returned_at=ON_TIME)

    def test_split_items_counted_together(self, db_session, rented):
        product, order = rented
        items = good(product, 2) + good(product, 1)
        with pytest.raises(ReturnError):
            return_service.process_return(order.id, items, returned_at=ON_TIME)

    def test_empty_items_rejected(self, db_session, rented):
        _, order = rented
        with pytest.raises(ValidationError):
            return_service.process_return(order.id, [])

    def test_unknown_condition_rejected(self, db_session, rented):
        product, order = rented
        with pytest.raises(ValidationError):
            return_service.process_return(
                order.id, [{"product_id": product.id, "quantity": 1, "condition": "LOST"}]
            )

    def test_failed_return_leaves_order_open(self, db_session, rented):
        product, order = rented
        with pytest.raises(ReturnError):
            return_service.process_return(order.id, good(product, 5))

        assert db_session.get(RentalOrder, order.id).status != ORDER_RETURNED
        assert db_session.query(Reservation).filter(Reservation.released_at.is_(None)).count() == 1


class TestFeeInvoicePayment:

    def test_fee_invoice_settled_separately(self, db_session, rented):
        product, order = rented
        return_service.process_return(order.id, good(product), returned_at=THREE_DAYS_LATE)
        paid_before = db_session.get(RentalOrder, order.id).amount_paid_cents

        partial = order_service.record_payment(order.id, 1000, invoice_kind=INVOICE_KIND_FEES)
        assert partial.status == INVOICE_PARTIAL

        settled = order_service.record_payment(order.id, 2540, invoice_kind=INVOICE_KIND_FEES)
        assert settled.status == INVOICE_PAID
        assert db_session.get(RentalOrder, order.id).amount_paid_cents == paid_before
