"""
Purchase tests: creation, updates and listing.
"""

import pytest

from stockcore.errors import InvalidArgument, InvalidState, NotFound
from stockcore.models import Product, StockLedgerEntry, Supplier
from stockcore.services import purchase_service


def _purchase(supplier, product, quantity=2, **kwargs):
    return purchase_service.create_purchase(
        supplier_id=supplier.id,
        items=[{"product_id": product.id, "quantity": quantity}],
        **kwargs,
    )


def test_create_purchase_uses_purchase_price_and_shipping(db_session, product_a, supplier, admin):
    purchase = _purchase(
        supplier,
        product_a,
        quantity=2,
        shipping_cents=250,
        expected_delivery_date="2026-11-01",
        actor=admin,
    )

    assert purchase.invoice_number.startswith("PO-")
    assert purchase.lines[0].unit_price_cents == 600
    assert purchase.subtotal_cents == 1200
    assert purchase.total_cents == 1450
    assert purchase.status == "pending"
    assert purchase.payment_status == "pending"
    assert purchase.supplier_id == supplier.id
    assert purchase.expected_delivery_date.year == 2026
    assert purchase.created_by_user_id == admin.user_id


def test_supplier_must_exist_and_be_active(db_session, product_a):
    inactive = Supplier(name="Gone Ltd", is_active=False)
    db_session.add(inactive)
    db_session.commit()

    with pytest.raises(NotFound):
        _purchase(inactive, product_a)
    with pytest.raises(InvalidArgument):
        purchase_service.create_purchase(supplier_id=None, items=[{"product_id": product_a.id, "quantity": 1}])


def test_update_items_recomputes_totals(db_session, product_a, product_b, supplier):
    purchase = _purchase(supplier, product_a, quantity=2)

    purchase = purchase_service.update_purchase(purchase.id, {
        "items": [
            {"product_id": product_a.id, "quantity": 1},
            {"product_id": product_b.id, "quantity": 4, "unit_price_cents": 100},
        ],
        "tax_rate": 10,
    })

    assert len(purchase.lines) == 2
    assert purchase.subtotal_cents == 600 + 400
    assert purchase.tax_cents == 100
    assert purchase.total_cents == 1100
    assert db_session.get(Product, product_a.id).quantity == 10


def test_items_locked_after_delivery_but_payment_still_editable(db_session, product_a, supplier):
    purchase = _purchase(supplier, product_a, quantity=2)
    purchase = purchase_service.update_purchase(purchase.id, {"status": "delivered"})
    assert purchase.status == "delivered"
    assert db_session.get(Product, product_a.id).quantity == 12

    with pytest.raises(InvalidState):
        purchase_service.update_purchase(purchase.id, {"items": [{"product_id": product_a.id, "quantity": 9}]})

    purchase = purchase_service.update_purchase(purchase.id, {"paid_cents": 1200, "payment_method": "bank transfer"})
    assert purchase.payment_status == "paid"
    assert purchase.payment_method == "bank transfer"
    assert purchase.due_cents == 0


def test_edits_and_delivery_commit_together(db_session, product_a, product_b, supplier):
    purchase = _purchase(supplier, product_a, quantity=2)

    purchase = purchase_service.update_purchase(purchase.id, {
        "items": [{"product_id": product_b.id, "quantity": 5, "unit_price_cents": 100}],
        "status": "delivered",
    })

    assert purchase.status == "delivered"
    assert purchase.actual_delivery_date is not None
    assert purchase.total_cents == 500
    assert db_session.get(Product, product_a.id).quantity == 10
    assert db_session.get(Product, product_b.id).quantity == 7


@pytest.mark.parametrize("patch", [
    {"paid_cents": 300, "status": "delivered"},
    {"notes": "changed", "status": "delivered"},
])
def test_failed_redelivery_leaves_purchase_unchanged(db_session, product_a, supplier, patch):
    purchase = _purchase(supplier, product_a, quantity=2, notes="original")
    purchase = purchase_service.update_purchase(purchase.id, {"status": "delivered"})
    entries_before = db_session.query(StockLedgerEntry).count()

    with pytest.raises(InvalidState):
        purchase_service.update_purchase(purchase.id, patch)

    purchase = purchase_service.get_purchase(purchase.id)
    assert purchase.paid_cents == 0
    assert purchase.payment_status == "pending"
    assert purchase.notes == "original"
    assert db_session.get(Product, product_a.id).quantity == 12
    assert db_session.query(StockLedgerEntry).count() == entries_before


def test_status_moves_to_processing_only_from_pending(db_session, product_a, supplier):
    purchase = _purchase(supplier, product_a)
    purchase = purchase_service.update_purchase(purchase.id, {"status": "processing"})
    assert purchase.status == "processing"

    with pytest.raises(InvalidArgument):
        purchase_service.update_purchase(purchase.id, {"status": "cancelled"})
    with pytest.raises(InvalidArgument):
        purchase_service.update_purchase(purchase.id, {"supplier_id": 2})


def test_list_purchases_filters(db_session, product_a, supplier):
    first = _purchase(supplier, product_a)
    _purchase(supplier, product_a)
    purchase_service.update_purchase(first.id, {"status": "processing"})

    processing = purchase_service.list_purchases(status="processing")
    assert [p.id for p in processing["items"]] == [first.id]

    by_supplier = purchase_service.list_purchases(supplier_id=supplier.id)
    assert by_supplier["pagination"]["total"] == 2

    with pytest.raises(InvalidArgument):
        purchase_service.list_purchases(status="lost")
