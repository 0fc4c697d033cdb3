"""
Stock adjustment tests.
"""

import re

import pytest

from stockcore.errors import InsufficientStock, InvalidArgument, NotFound
from stockcore.models import Product, StockAdjustment, StockLedgerEntry
from stockcore.services import adjustment_service

from conftest import make_product


def test_increase_records_line_and_ledger(db_session, product_a, admin):
    adjustment = adjustment_service.create_stock_adjustment(
        adjustment_type="increase",
        reason="Found in back room",
        reason_code="count",
        product_id=product_a.id,
        quantity=5,
        actor=admin,
    )

    assert re.match(r"^ADJ-\d{6}-0001$", adjustment.reference)
    assert adjustment.reason_code == "count"
    line = adjustment.lines[0]
    assert (line.previous_quantity, line.adjustment_quantity, line.new_quantity) == (10, 5, 15)
    assert db_session.get(Product, product_a.id).quantity == 15

    entry = db_session.query(StockLedgerEntry).filter_by(adjustment_id=adjustment.id).one()
    assert entry.cause == "adjustment"
    assert entry.quantity_delta == 5
    assert entry.reference == adjustment.reference
    assert entry.created_by_user_id == admin.user_id


def test_decrease_records_signed_quantity(db_session, product_a):
    adjustment = adjustment_service.create_stock_adjustment(
        adjustment_type="decrease",
        reason="Water damage",
        reason_code="damage",
        product_id=product_a.id,
        quantity=4,
    )
    line = adjustment.lines[0]
    assert (line.previous_quantity, line.adjustment_quantity, line.new_quantity) == (10, -4, 6)
    assert db_session.get(Product, product_a.id).quantity == 6


def test_decrease_below_zero_is_rejected(db_session, product_b):
    with pytest.raises(InsufficientStock) as exc:
        adjustment_service.create_stock_adjustment(
            adjustment_type="decrease",
            reason="Shrinkage",
            product_id=product_b.id,
            quantity=3,
        )
    assert exc.value.available == 2
    assert db_session.get(Product, product_b.id).quantity == 2
    assert db_session.query(StockAdjustment).count() == 0


def test_multi_item_decrease_is_all_or_nothing(db_session, product_a, product_b):
    with pytest.raises(InsufficientStock):
        adjustment_service.create_stock_adjustment(
            adjustment_type="decrease",
            reason="Stocktake",
            items=[
                {"product_id": product_a.id, "quantity": 1},
                {"product_id": product_b.id, "quantity": 3},
            ],
        )
    assert db_session.get(Product, product_a.id).quantity == 10
    assert db_session.query(StockLedgerEntry).filter_by(cause="adjustment").count() == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"adjustment_type": "sideways", "reason": "x", "quantity": 1},
        {"adjustment_type": "increase", "reason": "", "quantity": 1},
        {"adjustment_type": "increase", "reason": "x", "quantity": 0},
        {"adjustment_type": "increase", "reason": "x", "quantity": 1, "reason_code": "magic"},
        {"adjustment_type": "increase", "reason": "x", "quantity": 1, "items": [{"product_id": 1, "quantity": 1}]},
    ],
)
def test_invalid_adjustments(db_session, product_a, kwargs):
    kwargs = dict(kwargs)
    kwargs.setdefault("product_id", product_a.id)
    with pytest.raises(InvalidArgument):
        adjustment_service.create_stock_adjustment(**kwargs)
    assert db_session.get(Product, product_a.id).quantity == 10


def test_inactive_product_is_not_found(db_session):
    retired = make_product(db_session, sku="OLD-2", quantity=3, is_active=False)
    with pytest.raises(NotFound):
        adjustment_service.create_stock_adjustment(
            adjustment_type="increase",
            reason="x",
            product_id=retired.id,
            quantity=1,
        )


def test_list_and_get_adjustments(db_session, product_a, product_b):
    first = adjustment_service.create_stock_adjustment(
        adjustment_type="increase", reason="a", product_id=product_a.id, quantity=1,
    )
    adjustment_service.create_stock_adjustment(
        adjustment_type="decrease", reason="b", product_id=product_b.id, quantity=1,
    )

    by_product = adjustment_service.list_stock_adjustments(product_id=product_a.id)
    assert [a.id for a in by_product["items"]] == [first.id]

    decreases = adjustment_service.list_stock_adjustments(adjustment_type="decrease")
    assert decreases["pagination"]["total"] == 1

    assert adjustment_service.get_stock_adjustment(first.id).reference == first.reference
    with pytest.raises(NotFound):
        adjustment_service.get_stock_adjustment(999)
