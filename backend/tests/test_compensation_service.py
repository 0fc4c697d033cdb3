"""
Compensating actions: cancel sale, deliver purchase, cancel purchase.
"""

import pytest

from stockcore.errors import InvalidState, NotFound
from stockcore.models import Product, StockLedgerEntry
from stockcore.services import compensation_service, purchase_service, sales_service


@pytest.fixture
def pending_purchase(db_session, product_a, supplier):
    return purchase_service.create_purchase(
        supplier_id=supplier.id,
        items=[{"product_id": product_a.id, "quantity": 5}],
    )


def _quantity(session, product):
    return session.get(Product, product.id).quantity


class TestCancelSale:
    def test_round_trip_restores_stock_exactly(self, db_session, product_a, admin):
        sale = sales_service.create_sale(
            customer={"name": "Ann"},
            items=[{"product_id": product_a.id, "quantity": 4}],
        )
        assert _quantity(db_session, product_a) == 6

        cancelled = compensation_service.cancel_sale(sale.id, actor=admin, reason="customer changed mind")
        assert cancelled.payment_status == "cancelled"
        assert cancelled.cancelled_by_user_id == admin.user_id
        assert cancelled.cancelled_at is not None
        assert _quantity(db_session, product_a) == 10

        entries = (
            db_session.query(StockLedgerEntry)
            .filter_by(order_id=sale.id, product_id=product_a.id)
            .order_by(StockLedgerEntry.id)
            .all()
        )
        assert [e.cause for e in entries] == ["sale", "cancellation-reversal"]
        assert sum(e.quantity_delta for e in entries) == 0
        assert entries[-1].balance_after == 10
        assert entries[-1].note == "customer changed mind"

    def test_cancelling_twice_fails_without_restocking_again(self, db_session, product_a, admin):
        sale = sales_service.create_sale(
            customer={"name": "Ann"},
            items=[{"product_id": product_a.id, "quantity": 2}],
        )
        compensation_service.cancel_sale(sale.id, actor=admin)

        with pytest.raises(InvalidState) as exc:
            compensation_service.cancel_sale(sale.id, actor=admin)
        assert exc.value.state == "cancelled"
        assert _quantity(db_session, product_a) == 10

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFound):
            compensation_service.cancel_sale(404)


class TestDeliverPurchase:
    def test_purchase_creation_does_not_move_stock(self, db_session, product_a, pending_purchase):
        assert pending_purchase.status == "pending"
        assert _quantity(db_session, product_a) == 10
        assert db_session.query(StockLedgerEntry).filter_by(order_id=pending_purchase.id).count() == 0

    def test_delivery_receives_stock(self, db_session, product_a, pending_purchase, admin):
        purchase = compensation_service.deliver_purchase(pending_purchase.id, actor=admin)

        assert purchase.status == "delivered"
        assert purchase.actual_delivery_date is not None
        assert _quantity(db_session, product_a) == 15

        entry = db_session.query(StockLedgerEntry).filter_by(order_id=purchase.id).one()
        assert entry.cause == "purchase-delivery"
        assert entry.quantity_delta == 5
        assert entry.balance_after == 15
        assert entry.created_by_user_id == admin.user_id

    def test_second_delivery_is_rejected(self, db_session, product_a, pending_purchase):
        compensation_service.deliver_purchase(pending_purchase.id)

        with pytest.raises(InvalidState) as exc:
            compensation_service.deliver_purchase(pending_purchase.id)
        assert exc.value.state == "delivered"
        assert _quantity(db_session, product_a) == 15
        assert db_session.query(StockLedgerEntry).filter_by(order_id=pending_purchase.id).count() == 1

    def test_cannot_deliver_cancelled_purchase(self, db_session, product_a, pending_purchase):
        compensation_service.cancel_purchase(pending_purchase.id)
        with pytest.raises(InvalidState):
            compensation_service.deliver_purchase(pending_purchase.id)
        assert _quantity(db_session, product_a) == 10


class TestCancelPurchase:
    def test_cancel_pending_leaves_stock_untouched(self, db_session, product_a, pending_purchase, admin):
        purchase = compensation_service.cancel_purchase(pending_purchase.id, actor=admin)

        assert purchase.status == "cancelled"
        assert purchase.payment_status == "cancelled"
        assert purchase.cancelled_by_user_id == admin.user_id
        assert _quantity(db_session, product_a) == 10
        assert db_session.query(StockLedgerEntry).filter_by(order_id=purchase.id).count() == 0

    def test_cancel_delivered_purchase_fails(self, db_session, product_a, pending_purchase):
        compensation_service.deliver_purchase(pending_purchase.id)

        with pytest.raises(InvalidState):
            compensation_service.cancel_purchase(pending_purchase.id)
        assert _quantity(db_session, product_a) == 15

    def test_cancel_processing_purchase_fails(self, db_session, pending_purchase):
        purchase_service.update_purchase(pending_purchase.id, {"status": "processing"})
        with pytest.raises(InvalidState):
            compensation_service.cancel_purchase(pending_purchase.id)
