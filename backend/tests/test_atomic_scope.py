"""
run_atomic tests: retries, exhaustion and deadlines.
"""

import time

import pytest
from sqlalchemy.exc import OperationalError

from stockcore.errors import TransactionAborted
from stockcore.models import Product, Sale, StockLedgerEntry
from stockcore.services import sales_service, transaction_service
from stockcore.services.concurrency import run_atomic


def _locked():
    return OperationalError("UPDATE products", {}, Exception("database is locked"))


def test_conflict_is_retried(db_session):
    attempts = []

    def op(scope):
        attempts.append(scope.attempt)
        if scope.attempt == 1:
            raise _locked()
        return "done"

    assert run_atomic(op, operation="test op", backoff_base=0) == "done"
    assert attempts == [1, 2]


def test_exhausted_retries_abort(db_session):
    def op(scope):
        raise _locked()

    with pytest.raises(TransactionAborted) as exc:
        run_atomic(op, operation="test op", attempts=3, backoff_base=0)
    assert exc.value.attempts == 3
    assert exc.value.status_code == 503


def test_other_errors_are_not_retried(db_session):
    attempts = []

    def op(scope):
        attempts.append(scope.attempt)
        raise KeyError("boom")

    with pytest.raises(KeyError):
        run_atomic(op, operation="test op")
    assert attempts == [1]


def test_expired_scope_aborts_and_rolls_back(app, db_session, product_a, monkeypatch):
    real_apply = transaction_service.apply_stock_delta

    def slow_apply(product_id, quantity_delta):
        change = real_apply(product_id, quantity_delta)
        time.sleep(0.05)
        return change

    monkeypatch.setattr(transaction_service, "apply_stock_delta", slow_apply)
    monkeypatch.setitem(app.config, "STOCK_TXN_TIMEOUT_SECONDS", 0.01)

    with pytest.raises(TransactionAborted) as exc:
        sales_service.create_sale(
            customer={"name": "Ann"},
            items=[{"product_id": product_a.id, "quantity": 2}],
        )
    assert "timed out" in exc.value.reason

    assert db_session.get(Product, product_a.id).quantity == 10
    assert db_session.query(Sale).count() == 0
    assert db_session.query(StockLedgerEntry).filter_by(cause="sale").count() == 0
