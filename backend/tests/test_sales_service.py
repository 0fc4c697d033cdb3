"""
Sales tests: stock decrement, atomicity, invoice numbering and updates.
"""

import re

import pytest

from stockcore.errors import InsufficientStock, InvalidArgument, InvalidState, NotFound
from stockcore.models import DocumentSequence, Product, Sale, StockLedgerEntry
from stockcore.services import sales_service, transaction_service
from stockcore.services.compensation_service import cancel_sale

from conftest import make_product


def _sale(product, quantity, actor=None, **kwargs):
    return sales_service.create_sale(
        customer={"name": "Walk-in"},
        items=[{"product_id": product.id, "quantity": quantity}],
        actor=actor,
        **kwargs,
    )


def test_sale_decrements_stock_and_writes_ledger(db_session, product_a, cashier):
    sale = sales_service.create_sale(
        customer={"name": "Ann", "phone": "555-0101"},
        items=[{"product_id": product_a.id, "quantity": 3}],
        tax_rate=10,
        paid_cents=5000,
        payment_method="credit card",
        actor=cashier,
    )

    assert re.match(r"^INV-\d{6}-0001$", sale.invoice_number)
    assert sale.subtotal_cents == 3000
    assert sale.tax_cents == 300
    assert sale.total_cents == 3300
    assert sale.change_cents == 1700
    assert sale.payment_status == "paid"
    assert sale.payment_method == "credit card"
    assert sale.created_by_user_id == cashier.user_id

    assert db_session.get(Product, product_a.id).quantity == 7

    entries = db_session.query(StockLedgerEntry).filter_by(order_id=sale.id).all()
    assert len(entries) == 1
    assert entries[0].quantity_delta == -3
    assert entries[0].balance_after == 7
    assert entries[0].cause == "sale"
    assert entries[0].reference == sale.invoice_number


def test_unit_price_defaults_to_selling_price(db_session, product_a):
    sale = sales_service.create_sale(
        customer={"name": "Ann"},
        items=[
            {"product_id": product_a.id, "quantity": 1},
            {"product_id": product_a.id, "quantity": 2, "unit_price_cents": 800},
        ],
    )
    assert [line.unit_price_cents for line in sale.lines] == [1000, 800]
    assert sale.subtotal_cents == 1000 + 1600


def test_second_line_short_leaves_first_line_untouched(db_session, product_a, product_b):
    with pytest.raises(InsufficientStock) as exc:
        sales_service.create_sale(
            customer={"name": "Ann"},
            items=[
                {"product_id": product_a.id, "quantity": 3},
                {"product_id": product_b.id, "quantity": 5},
            ],
        )

    assert exc.value.product_id == product_b.id
    assert exc.value.available == 2
    assert exc.value.requested == 5
    assert db_session.get(Product, product_a.id).quantity == 10
    assert db_session.query(Sale).count() == 0
    assert db_session.query(StockLedgerEntry).filter_by(cause="sale").count() == 0


def test_failure_mid_mutation_rolls_back_everything(db_session, product_a, product_b, monkeypatch):
    calls = []
    real_append = transaction_service.append_stock_entry

    def flaky_append(**kwargs):
        calls.append(kwargs)
        if len(calls) == 2:
            raise RuntimeError("ledger unavailable")
        return real_append(**kwargs)

    monkeypatch.setattr(transaction_service, "append_stock_entry", flaky_append)

    with pytest.raises(RuntimeError, match="ledger unavailable"):
        sales_service.create_sale(
            customer={"name": "Ann"},
            items=[
                {"product_id": product_a.id, "quantity": 1},
                {"product_id": product_b.id, "quantity": 1},
            ],
        )

    assert db_session.get(Product, product_a.id).quantity == 10
    assert db_session.get(Product, product_b.id).quantity == 2
    assert db_session.query(Sale).count() == 0
    assert db_session.query(StockLedgerEntry).filter_by(cause="sale").count() == 0
    assert db_session.query(DocumentSequence).count() == 0


def test_repeated_lines_are_summed_for_stock_check(db_session, product_b):
    with pytest.raises(InsufficientStock) as exc:
        sales_service.create_sale(
            customer={"name": "Ann"},
            items=[
                {"product_id": product_b.id, "quantity": 1},
                {"product_id": product_b.id, "quantity": 2},
            ],
        )
    assert exc.value.requested == 3
    assert db_session.get(Product, product_b.id).quantity == 2


def test_inactive_and_unknown_products_are_not_found(db_session):
    retired = make_product(db_session, sku="OLD-1", quantity=5, is_active=False)

    with pytest.raises(NotFound):
        _sale(retired, 1)
    with pytest.raises(NotFound):
        sales_service.create_sale(customer={"name": "Ann"}, items=[{"product_id": 9999, "quantity": 1}])
    assert db_session.get(Product, retired.id).quantity == 5


@pytest.mark.parametrize(
    "overrides",
    [
        {"items": []},
        {"items": [{"quantity": 1}]},
        {"customer": {"phone": "555"}},
        {"discount_cents": -5},
        {"tax_rate": "abc"},
        {"payment_method": "barter"},
    ],
)
def test_invalid_input_is_rejected_before_any_mutation(db_session, product_a, overrides):
    kwargs = {
        "customer": {"name": "Ann"},
        "items": [{"product_id": product_a.id, "quantity": 1}],
    }
    kwargs.update(overrides)

    with pytest.raises(InvalidArgument):
        sales_service.create_sale(**kwargs)
    assert db_session.get(Product, product_a.id).quantity == 10


@pytest.mark.parametrize("quantity", [0, -2, 1.5, "2.0", True])
def test_non_positive_or_non_integer_quantity_rejected(db_session, product_a, quantity):
    with pytest.raises(InvalidArgument):
        _sale(product_a, quantity)


def test_invoice_numbers_are_sequential(db_session, product_a):
    first = _sale(product_a, 1)
    second = _sale(product_a, 1)
    assert first.invoice_number.endswith("-0001")
    assert second.invoice_number.endswith("-0002")
    assert first.invoice_number[:-4] == second.invoice_number[:-4]


def test_update_sale_recomputes_payment(db_session, product_a, admin):
    sale = _sale(product_a, 3, tax_rate=10)
    assert sale.payment_status == "pending"
    assert sale.due_cents == 3300

    sale = sales_service.update_sale(sale.id, {"paid_cents": 1000, "notes": "deposit"}, actor=admin)
    assert sale.payment_status == "partial"
    assert sale.due_cents == 2300
    assert sale.notes == "deposit"

    sale = sales_service.update_sale(sale.id, {"paid_cents": 4000})
    assert sale.payment_status == "paid"
    assert sale.due_cents == 0
    assert sale.change_cents == 700


def test_update_sale_rejects_line_changes(db_session, product_a):
    sale = _sale(product_a, 1)
    with pytest.raises(InvalidArgument):
        sales_service.update_sale(sale.id, {"items": []})


def test_cancelled_sale_cannot_be_updated(db_session, product_a, admin):
    sale = _sale(product_a, 1)
    cancel_sale(sale.id, actor=admin)
    with pytest.raises(InvalidState):
        sales_service.update_sale(sale.id, {"paid_cents": 1000})


def test_list_sales_filters_and_paginates(db_session, product_a):
    _sale(product_a, 1, paid_cents=1000)
    _sale(product_a, 1)
    _sale(product_a, 1)

    result = sales_service.list_sales(payment_status="pending", page=1, per_page=1)
    assert result["pagination"]["total"] == 2
    assert result["pagination"]["total_pages"] == 2
    assert result["pagination"]["has_next"] is True
    assert len(result["items"]) == 1

    paid = sales_service.list_sales(payment_status="paid")
    assert paid["pagination"]["total"] == 1


def test_get_unknown_sale(db_session):
    with pytest.raises(NotFound):
        sales_service.get_sale(42)
