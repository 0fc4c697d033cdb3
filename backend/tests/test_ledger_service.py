"""
Stock ledger tests: append-only enforcement, reconstruction and audits.
"""

import pytest
from sqlalchemy import update

from stockcore.errors import InvalidArgument, InvalidState
from stockcore.models import Product, StockLedgerEntry
from stockcore.services import adjustment_service, ledger_service, sales_service
from stockcore.services.stock_service import StockChange


def test_entries_cannot_be_updated(db_session, product_a):
    entry = db_session.query(StockLedgerEntry).filter_by(product_id=product_a.id).first()
    entry.note = "rewritten"
    with pytest.raises(InvalidState):
        db_session.flush()
    db_session.rollback()


def test_entries_cannot_be_deleted(db_session, product_a):
    entry = db_session.query(StockLedgerEntry).filter_by(product_id=product_a.id).first()
    db_session.delete(entry)
    with pytest.raises(InvalidState):
        db_session.flush()
    db_session.rollback()


def test_unknown_cause_rejected(db_session, product_a):
    change = StockChange(product_id=product_a.id, previous_quantity=10, quantity_delta=1, new_quantity=11)
    with pytest.raises(InvalidArgument):
        ledger_service.append_stock_entry(change=change, cause="magic")


def test_audit_is_consistent_after_operations(db_session, product_a, product_b):
    sales_service.create_sale(
        customer={"name": "Ann"},
        items=[{"product_id": product_a.id, "quantity": 3}],
    )
    adjustment_service.create_stock_adjustment(
        adjustment_type="increase", reason="count", product_id=product_b.id, quantity=4,
    )

    audit = ledger_service.audit_product_stock(product_a.id)
    assert audit["store_quantity"] == 7
    assert audit["ledger_quantity"] == 7
    assert audit["entry_count"] == 2
    assert audit["consistent"] is True

    assert all(row["consistent"] for row in ledger_service.audit_all_stock())
    assert ledger_service.reconstruct_quantity(product_b.id) == 6


def test_audit_detects_quantity_changed_outside_the_ledger(db_session, product_a):
    db_session.execute(update(Product).where(Product.id == product_a.id).values(quantity=99))
    db_session.commit()

    audit = ledger_service.audit_product_stock(product_a.id)
    assert audit["consistent"] is False
    assert audit["store_quantity"] == 99
    assert audit["ledger_quantity"] == 10


def test_list_entries_filters_by_cause(db_session, product_a):
    sales_service.create_sale(
        customer={"name": "Ann"},
        items=[{"product_id": product_a.id, "quantity": 1}],
    )

    result = ledger_service.list_ledger_entries(product_id=product_a.id, cause="sale")
    assert result["pagination"]["total"] == 1
    assert result["items"][0].quantity_delta == -1

    everything = ledger_service.list_ledger_entries(product_id=product_a.id)
    assert everything["pagination"]["total"] == 2

    with pytest.raises(InvalidArgument):
        ledger_service.list_ledger_entries(cause="theft")
