"""
Stock ledger tests: movement kinds, status classification and low-stock
notifications.
"""

import pytest

from unitledger.extensions import db
from unitledger.models import StockAlert, StockMovement
from unitledger.models.inventory import STOCK_CRITICAL, STOCK_OK, STOCK_OUT, STOCK_WARNING
from unitledger.services import stock_ledger_service
from unitledger.services.notification_service import (
    AlertRecordNotifier,
    LowStockNotifier,
    list_open_alerts,
    resolve_alert,
    set_notifiers,
)
from unitledger.services.stock_ledger_service import classify_stock, record_movement
from unitledger.validation import InvalidOperationError, NotFoundError, ValidationError


class ExplodingNotifier(LowStockNotifier):
    name = "exploding"

    def notify(self, event):
        raise RuntimeError("mail server down")


class TestClassifyStock:
    """Status is derived from current stock and the two thresholds."""

    def test_thresholds(self):
        assert classify_stock(0, 2, 5) == STOCK_OUT
        assert classify_stock(-1, 2, 5) == STOCK_OUT
        assert classify_stock(2, 2, 5) == STOCK_CRITICAL
        assert classify_stock(5, 2, 5) == STOCK_WARNING
        assert classify_stock(6, 2, 5) == STOCK_OK


class TestRecordMovement:

    def test_entry_adds_and_journals(self, make_product):
        product = make_product(initial_stock=4)

        movement, product = record_movement(
            product_id=product.id, kind="entry", quantity=6, reference="PO-7"
        )

        assert product.current_stock == 10
        assert product.status == STOCK_OK
        assert movement.kind == "ENTRY"
        assert movement.stock_before == 4
        assert movement.stock_after == 10
        assert movement.reference == "PO-7"

    def test_exit_more_than_stock_is_rejected(self, make_product):
        product = make_product(initial_stock=3)

        with pytest.raises(InvalidOperationError, match="Insufficient stock. Available: 3, requested: 5"):
            record_movement(product_id=product.id, kind="EXIT", quantity=5)

        db.session.refresh(product)
        assert product.current_stock == 3
        # Only the initial stock entry exists
        assert db.session.query(StockMovement).filter_by(product_id=product.id).count() == 1

    def test_adjust_sets_absolute_value(self, make_product):
        product = make_product(initial_stock=12)

        movement, product = record_movement(product_id=product.id, kind="ADJUST", quantity=7)

        assert product.current_stock == 7
        assert movement.stock_before == 12
        assert movement.stock_after == 7
        assert movement.quantity == 7

    def test_adjust_to_zero_is_allowed(self, make_product):
        product = make_product(initial_stock=2)

        _, product = record_movement(product_id=product.id, kind="ADJUST", quantity=0)

        assert product.current_stock == 0
        assert product.status == STOCK_OUT

    def test_return_adds_stock(self, make_product):
        product = make_product(initial_stock=1)

        movement, product = record_movement(product_id=product.id, kind="RETURN", quantity=2)

        assert product.current_stock == 3
        assert movement.kind == "RETURN"

    def test_invalid_kind_and_quantity(self, make_product):
        product = make_product()

        with pytest.raises(ValidationError, match="Invalid movement kind"):
            record_movement(product_id=product.id, kind="TRANSFER", quantity=1)
        with pytest.raises(ValidationError):
            record_movement(product_id=product.id, kind="ENTRY", quantity=0)
        with pytest.raises(ValidationError):
            record_movement(product_id=product.id, kind="EXIT", quantity=-2)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            record_movement(product_id=999, kind="ENTRY", quantity=1)


class TestLowStockNotifications:

    def test_crossing_from_ok_notifies_once(self, make_product, notifier):
        product = make_product(min_stock=1, warning_stock=3, initial_stock=10)
        assert product.status == STOCK_OK

        record_movement(product_id=product.id, kind="EXIT", quantity=8)
        record_movement(product_id=product.id, kind="EXIT", quantity=1)

        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.product_id == product.id
        assert event.current_stock == 2
        assert event.status == STOCK_WARNING

    def test_no_event_while_staying_ok(self, make_product, notifier):
        product = make_product(min_stock=1, warning_stock=3, initial_stock=10)

        record_movement(product_id=product.id, kind="EXIT", quantity=2)

        assert notifier.events == []

    def test_notifier_failure_does_not_undo_movement(self, app, make_product, notifier):
        product = make_product(min_stock=1, warning_stock=3, initial_stock=5)
        set_notifiers(app, [ExplodingNotifier(), notifier])

        movement, product = record_movement(product_id=product.id, kind="EXIT", quantity=5)

        # The failing notifier does not stop the next one
        assert len(notifier.events) == 1

        assert product.current_stock == 0
        assert db.session.get(StockMovement, movement.id) is not None

    def test_alert_record_is_persisted_and_resolvable(self, app, make_product, notifier):
        product = make_product(min_stock=2, warning_stock=4, initial_stock=6)
        set_notifiers(app, [AlertRecordNotifier()])

        record_movement(product_id=product.id, kind="EXIT", quantity=6)

        alerts = list_open_alerts()
        assert len(alerts) == 1
        assert alerts[0].alert_type == "OUT_OF_STOCK"
        assert alerts[0].current_stock == 0

        resolved = resolve_alert(alerts[0].id)
        assert resolved.is_resolved is True
        assert resolved.resolved_at is not None
        assert list_open_alerts() == []
        assert db.session.query(StockAlert).count() == 1


class TestListMovements:

    def test_filters_and_pagination(self, make_product):
        product = make_product(initial_stock=5)
        other = make_product(initial_stock=1)
        record_movement(product_id=product.id, kind="EXIT", quantity=1)
        record_movement(product_id=product.id, kind="ENTRY", quantity=3)

        page = stock_ledger_service.list_movements(product_id=product.id, limit=2)
        assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
        assert len(page["items"]) == 2
        assert all(m.product_id == product.id for m in page["items"])

        exits = stock_ledger_service.list_movements(kind="exit")
        assert [m.kind for m in exits["items"]] == ["EXIT"]

        everything = stock_ledger_service.list_movements(limit=10_000)
        assert everything["pagination"]["limit"] == 500
        assert everything["pagination"]["total"] == 4
        assert other.id in {m.product_id for m in everything["items"]}
