# Overview: Threaded concurrency tests against a file-backed SQLite database.

"""
Concurrency tests for the unit ledger.

Each test runs real threads, each with its own app context and session,
against a temporary SQLite file so the database arbitrates the race.
"""
import os
import tempfile
import threading
import unittest

from unitledger import create_app
from unitledger.config import Config
from unitledger.extensions import db
from unitledger.models import Consignee, InventoryUnit, Payment, Product, StockMovement
from unitledger.services import (
    consignment_service,
    customer_service,
    products_service,
    settlement_service,
    unit_service,
)
from unitledger.validation import InvalidOperationError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        config = type("ConcurrencyConfig", (Config,), {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LOW_STOCK_NOTIFIERS": (),
            "RETRY_ATTEMPTS": 5,
        })
        self.app = create_app(config)

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = products_service.create_product(code="RACE-1", name="Race Product")
            self.product_id = product.id
            customer = customer_service.create_customer(name="Racer")
            self.customer_id = customer.id

            unit_service.register_unit(product_id=self.product_id, serial="RACE-SN", cost_cents=100)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    outcome = target()
                    with lock:
                        results.append(("ok", outcome))
                except Exception as exc:
                    with lock:
                        results.append(("error", exc))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_sell_same_serial(self):
        def sell():
            unit = unit_service.sell_unit(
                serial="RACE-SN",
                customer_id=self.customer_id,
                sale_price_cents=150,
                payment_method="CASH",
            )
            return unit.id

        results = self._run_threads(sell, 2)

        successes = [r for r in results if r[0] == "ok"]
        failures = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InvalidOperationError)

        with self.app.app_context():
            unit = db.session.query(InventoryUnit).filter_by(serial="RACE-SN").one()
            self.assertEqual(unit.state, "SOLD")
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.current_stock, 0)
            exits = db.session.query(StockMovement).filter_by(product_id=self.product_id, kind="EXIT").count()
            self.assertEqual(exits, 1)

    def test_concurrent_payments_respect_pending_balance(self):
        with self.app.app_context():
            consignee = consignment_service.create_consignee(name="Race Consignee")
            consignee_id = consignee.id
            unit = db.session.query(InventoryUnit).filter_by(serial="RACE-SN").one()
            consignment_service.create_consignment(
                consignee_id=consignee_id,
                lines=[{"product_id": self.product_id, "unit_id": unit.id, "price_cents": 100}],
            )

        def pay():
            payment = settlement_service.register_payment(
                consignee_id=consignee_id, amount_cents=60, method="CASH"
            )
            return payment.id

        results = self._run_threads(pay, 2)

        successes = [r for r in results if r[0] == "ok"]
        self.assertEqual(len(successes), 1)

        with self.app.app_context():
            consignee = db.session.get(Consignee, consignee_id)
            self.assertEqual(consignee.total_paid_cents, 60)
            self.assertEqual(consignee.pending_balance_cents, 40)
            self.assertEqual(db.session.query(Payment).count(), 1)


if __name__ == "__main__":
    unittest.main()
