"""
Pytest fixtures for rental engine backend tests.

Provides the application with an in-memory database, a per-test wipe,
and factories for users, products and quotations.
"""

from datetime import date, datetime

import pytest

from rental_engine import create_app
from rental_engine.extensions import db
from rental_engine.models import Product, Quotation, QuotationLine, User
from rental_engine.models.catalog import ROLE_CUSTOMER, ROLE_VENDOR
from rental_engine.models.quotations import LINE_RENTAL
from rental_engine.services.mail_service import get_mailer
from rental_engine.time_utils import end_of_day


CRON_SECRET = "test-cron-secret"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_BACKEND': 'log',
        'CRON_SECRET': CRON_SECRET,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        get_mailer().outbox.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def outbox(app):
    return get_mailer().outbox


@pytest.fixture
def customer(db_session):
    user = User(name="Casey Customer", email="casey@example.com", role=ROLE_CUSTOMER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def vendor(db_session):
    user = User(name="Vera Vendor", email="vera@example.com", role=ROLE_VENDOR)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def make_product(db_session, vendor):
    """Factory: make_product(quantity_on_hand=5, name=None, vendor_id=None)."""
    counter = {"n": 0}

    def _make(quantity_on_hand=5, name=None, vendor_id=None, rental_price_cents=10000):
        counter["n"] += 1
        product = Product(
            vendor_id=vendor_id or vendor.id,
            name=name or f"Camera {counter['n']}",
            quantity_on_hand=quantity_on_hand,
            sale_price_cents=50000,
            cost_price_cents=30000,
            rental_price_cents=rental_price_cents,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def window():
    """window(start_day, end_day): midnight of start_day to the end of end_day."""
    def _window(start_day: date, end_day: date) -> tuple[datetime, datetime]:
        return datetime.combine(start_day, datetime.min.time()), end_of_day(end_day)

    return _window


@pytest.fixture
def make_quotation(db_session, customer):
    """
    Factory for DRAFT quotations.

    lines: [(product, quantity, line_type, unit_price_cents)], line_type and
    unit price optional (RENTAL, 10000).
    """
    def _make(lines, start=None, end=None, customer_id=None, tax_cents=0):
        quotation = Quotation(
            customer_id=customer_id or customer.id,
            rental_start=start,
            rental_end=end,
        )
        db_session.add(quotation)
        db_session.flush()

        subtotal = 0
        for position, entry in enumerate(lines):
            product, quantity = entry[0], entry[1]
            line_type = entry[2] if len(entry) > 2 else LINE_RENTAL
            unit_price = entry[3] if len(entry) > 3 else 10000
            line_total = unit_price * quantity
            subtotal += line_total
            db_session.add(QuotationLine(
                quotation_id=quotation.id,
                product_id=product.id,
                position=position,
                line_type=line_type,
                quantity=quantity,
                unit_price_cents=unit_price,
                line_total_cents=line_total,
            ))

        quotation.subtotal_cents = subtotal
        quotation.tax_cents = tax_cents
        quotation.total_cents = subtotal + tax_cents
        db_session.commit()
        return quotation

    return _make
