# Overview: Threaded confirmation races against a file-backed SQLite database.

"""
Concurrent confirmation tests.

Several workers confirm quotations at the same time; the write lock taken
at the start of the confirmation transaction must serialize them so that
no unit is promised twice and document numbers stay unique.
"""
import os
import tempfile
import threading
import unittest
from datetime import date, datetime

from rental_engine import create_app
from rental_engine.extensions import db
from rental_engine.models import Product, Quotation, QuotationLine, RentalOrder, Reservation, User
from rental_engine.models.catalog import ROLE_CUSTOMER, ROLE_VENDOR
from rental_engine.models.quotations import LINE_RENTAL
from rental_engine.services import order_service
from rental_engine.services.inventory_service import InsufficientStockError
from rental_engine.time_utils import end_of_day


WORKERS = 6


class ConfirmationConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "MAIL_BACKEND": "log",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            customer = User(name="Race Customer", email="race@example.com", role=ROLE_CUSTOMER)
            vendor = User(name="Race Vendor", email="race-vendor@example.com", role=ROLE_VENDOR)
            db.session.add_all([customer, vendor])
            db.session.commit()
            self.customer_id = customer.id
            self.vendor_id = vendor.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _product(self, quantity_on_hand):
        product = Product(
            vendor_id=self.vendor_id,
            name="Race Camera",
            quantity_on_hand=quantity_on_hand,
            sale_price_cents=50000,
            cost_price_cents=30000,
            rental_price_cents=10000,
        )
        db.session.add(product)
        db.session.commit()
        return product.id

    def _quotation(self, product_id):
        quotation = Quotation(
            customer_id=self.customer_id,
            rental_start=datetime(2030, 6, 1),
            rental_end=end_of_day(date(2030, 6, 3)),
            subtotal_cents=10000,
            tax_cents=0,
            total_cents=10000,
        )
        db.session.add(quotation)
        db.session.flush()
        db.session.add(QuotationLine(
            quotation_id=quotation.id,
            product_id=product_id,
            position=0,
            line_type=LINE_RENTAL,
            quantity=1,
            unit_price_cents=10000,
            line_total_cents=10000,
        ))
        db.session.commit()
        return quotation.id

    def _race(self, quotation_ids):
        outcomes = []
        lock = threading.Lock()

        def worker(quotation_id):
            with self.app.app_context():
                try:
                    result = order_service.confirm_quotation(quotation_id)
                    with lock:
                        outcomes.append(result)
                except Exception as exc:
                    with lock:
                        outcomes.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(qid,)) for qid in quotation_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return outcomes

    def test_last_unit_is_reserved_once(self):
        with self.app.app_context():
            product_id = self._product(quantity_on_hand=1)
            quotation_ids = [self._quotation(product_id) for _ in range(WORKERS)]

        outcomes = self._race(quotation_ids)

        confirmed = [o for o in outcomes if isinstance(o, order_service.ConfirmationResult)]
        rejected = [o for o in outcomes if isinstance(o, InsufficientStockError)]
        self.assertEqual(len(confirmed), 1, outcomes)
        self.assertEqual(len(rejected), WORKERS - 1, outcomes)

        with self.app.app_context():
            self.assertEqual(db.session.query(RentalOrder).count(), 1)
            reservations = db.session.query(Reservation).filter_by(product_id=product_id).all()
            self.assertEqual(len(reservations), 1)
            self.assertEqual(reservations[0].quantity, 1)
            self.assertEqual(reservations[0].order_id, confirmed[0].order_id)

    def test_order_numbers_unique_under_contention(self):
        with self.app.app_context():
            product_id = self._product(quantity_on_hand=WORKERS)
            quotation_ids = [self._quotation(product_id) for _ in range(WORKERS)]

        outcomes = self._race(quotation_ids)

        errors = [o for o in outcomes if isinstance(o, Exception)]
        self.assertFalse(errors)
        numbers = [o.order_number for o in outcomes]
        self.assertEqual(len(numbers), WORKERS)
        self.assertEqual(len(numbers), len(set(numbers)))


if __name__ == "__main__":
    unittest.main()
