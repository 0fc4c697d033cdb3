"""
Threaded concurrency tests against a file-backed SQLite database.

Each worker runs in its own app context, so it gets its own session and
connection, the way concurrent requests do.
"""
import os
import tempfile
import threading
import unittest

from stockcore import create_app
from stockcore.extensions import db
from stockcore.errors import InsufficientStock, InventoryError, TransactionAborted
from stockcore.models import Product, Sale, StockLedgerEntry
from stockcore.models.stock import CAUSE_OPENING_BALANCE
from stockcore.services import sales_service
from stockcore.services.ledger_service import audit_product_stock


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STOCK_TXN_RETRY_BACKOFF": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = Product(
                sku="CONCUR-1",
                name="Concurrent Product",
                selling_price_cents=1000,
                quantity=5,
            )
            db.session.add(product)
            db.session.flush()
            db.session.add(StockLedgerEntry(
                product_id=product.id,
                quantity_delta=5,
                balance_after=5,
                cause=CAUSE_OPENING_BALANCE,
            ))
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, count, quantity):
        results = []
        lock = threading.Lock()
        start = threading.Barrier(count)

        def worker():
            with self.app.app_context():
                try:
                    start.wait()
                    sale = sales_service.create_sale(
                        customer={"name": "Racer"},
                        items=[{"product_id": self.product_id, "quantity": quantity}],
                    )
                    with lock:
                        results.append(("ok", sale.invoice_number))
                except InventoryError as exc:
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

    def test_two_sales_for_full_stock_only_one_commits(self):
        results = self._run_workers(2, 5)

        successes = [r for r in results if r[0] == "ok"]
        failures = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], (InsufficientStock, TransactionAborted))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).quantity, 0)
            self.assertEqual(db.session.query(Sale).count(), 1)
            self.assertTrue(audit_product_stock(self.product_id)["consistent"])

    def test_concurrent_sales_get_unique_invoice_numbers(self):
        results = self._run_workers(5, 1)

        numbers = [r[1] for r in results if r[0] == "ok"]
        self.assertEqual(len(numbers), 5, results)
        self.assertEqual(len(numbers), len(set(numbers)))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).quantity, 0)
            self.assertTrue(audit_product_stock(self.product_id)["consistent"])


if __name__ == "__main__":
    unittest.main()
