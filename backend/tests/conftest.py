"""
Pytest fixtures for unit ledger backend tests.

Provides test database setup, entity factories, a recording low-stock
notifier, and the Flask test client.
"""

import pytest

from unitledger import create_app
from unitledger.config import Config
from unitledger.extensions import db
from unitledger.services import consignment_service, customer_service, products_service, unit_service
from unitledger.services.notification_service import EXTENSION_KEY, LowStockNotifier, set_notifiers


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_WARRANTY_MONTHS = 6
    ALLOW_CONSIGNEE_CREDIT = False
    RETRY_ATTEMPTS = 3


class RecordingNotifier(LowStockNotifier):
    """Keeps every delivered event in memory."""

    name = "recording"

    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def notifier(app):
    """Replace the configured notifier chain with a recorder for one test."""
    previous = list(app.extensions.get(EXTENSION_KEY, []))
    recorder = RecordingNotifier()
    set_notifiers(app, [recorder])
    yield recorder
    set_notifiers(app, previous)


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        kwargs.setdefault("code", f"PRD-{counter['n']:03d}")
        kwargs.setdefault("name", f"Product {counter['n']}")
        kwargs.setdefault("min_stock", 1)
        kwargs.setdefault("warning_stock", 3)
        return products_service.create_product(**kwargs)

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(code="RTR-100", name="Router 100", base_cost_cents=4500)


@pytest.fixture(scope='function')
def customer(db_session):
    return customer_service.create_customer(name="Walk-in Buyer", email="buyer@example.com")


@pytest.fixture(scope='function')
def consignee(db_session):
    return consignment_service.create_consignee(name="Reseller One", phone="555-0100")


@pytest.fixture(scope='function')
def make_units(db_session):
    """Register AVAILABLE units for a product: make_units(product, ["A", "B"], cost_cents=100)."""

    def _make(product, serials, cost_cents=10000, **kwargs):
        return [
            unit_service.register_unit(
                product_id=product.id, serial=serial, cost_cents=cost_cents, **kwargs
            )
            for serial in serials
        ]

    return _make
