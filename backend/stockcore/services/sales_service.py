"""
Sales Service - stock-decreasing orders

WHY: A sale takes stock off the shelf at the moment it is created, so the
stock check, the decrement, the ledger entries and the invoice all commit
together through the Transaction Coordinator. Cancelling is the only way
to give the stock back (see compensation_service.cancel_sale).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..extensions import db
from ..models import Sale
from ..models.orders import SALE, PAYMENT_METHODS, PAYMENT_STATUSES
from ..errors import InvalidArgument, InvalidState
from ..actor import ActorContext
from ..validation import coerce_choice, coerce_datetime, coerce_money_cents, coerce_text
from .concurrency import AtomicScope, run_atomic
from .money_service import settle_payment
from .pagination import paginate_query
from .transaction_service import OrderDraft, load_order, place_order

SALE_UPDATABLE_FIELDS = {"customer", "notes", "payment_method", "paid_cents"}


def _parse_customer(customer: Any) -> dict:
    if not isinstance(customer, dict):
        raise InvalidArgument("Customer name is required", field="customer")
    return {
        "customer_name": coerce_text(customer.get("name"), "customer.name", required=True, max_length=255),
        "customer_phone": coerce_text(customer.get("phone"), "customer.phone", max_length=64),
        "customer_email": coerce_text(customer.get("email"), "customer.email", max_length=255),
    }


def create_sale(
    *,
    customer: dict,
    items: list[dict],
    tax_rate=None,
    discount_cents=None,
    paid_cents=None,
    payment_method: str | None = None,
    notes: str | None = None,
    sale_date: datetime | str | None = None,
    actor: ActorContext | None = None,
) -> Sale:
    """
    Create a sale, decrementing stock for every line atomically.

    Raises InvalidArgument, NotFound, InsufficientStock or TransactionAborted;
    on any of them no stock, ledger or sale row is left behind.
    """
    draft = OrderDraft(
        kind=SALE,
        items=items,
        tax_rate=tax_rate,
        discount_cents=discount_cents,
        paid_cents=paid_cents,
        payment_method=payment_method,
        order_date=coerce_datetime(sale_date, "sale_date"),
        notes=coerce_text(notes, "notes"),
        attributes=_parse_customer(customer),
    )
    return place_order(draft, actor)


def get_sale(sale_id: int) -> Sale:
    return load_order(SALE, sale_id)


def update_sale(sale_id: int, patch: dict, actor: ActorContext | None = None) -> Sale:
    """
    Update customer, notes, payment method or amount paid.

    A new paid amount recomputes due/change/payment status from the stored
    total. Lines and totals are immutable after creation.
    """
    if not isinstance(patch, dict):
        raise InvalidArgument("Invalid JSON payload")
    for key in patch:
        if key not in SALE_UPDATABLE_FIELDS:
            raise InvalidArgument(f"Field not allowed: {key}", field=key)

    def _op(scope: AtomicScope) -> Sale:
        scope.checkpoint("validate")
        sale = load_order(SALE, sale_id)
        if sale.is_cancelled:
            raise InvalidState("Cancelled sale cannot be updated", state=sale.payment_status)

        if "customer" in patch:
            for key, value in _parse_customer(patch["customer"]).items():
                setattr(sale, key, value)
        if "notes" in patch:
            sale.notes = coerce_text(patch["notes"], "notes")
        if "payment_method" in patch:
            sale.payment_method = coerce_choice(patch["payment_method"], "payment_method", PAYMENT_METHODS)
        if "paid_cents" in patch:
            paid = coerce_money_cents(patch["paid_cents"], "paid_cents")
            due, change, status = settle_payment(sale.total_cents, paid, tracks_change=SALE.tracks_change)
            sale.paid_cents = paid
            sale.due_cents = due
            sale.change_cents = change
            sale.payment_status = status

        scope.checkpoint("persist-order")
        db.session.flush()
        return sale

    return run_atomic(_op, operation="update sale")


def list_sales(
    *,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    q = db.session.query(Sale)
    if from_date is not None:
        q = q.filter(Sale.order_date >= from_date)
    if to_date is not None:
        q = q.filter(Sale.order_date <= to_date)
    if payment_status:
        q = q.filter(Sale.payment_status == coerce_choice(payment_status, "payment_status", PAYMENT_STATUSES))
    if payment_method:
        q = q.filter(Sale.payment_method == coerce_choice(payment_method, "payment_method", PAYMENT_METHODS))

    q = q.order_by(Sale.order_date.desc(), Sale.id.desc())
    return paginate_query(q, page=page, per_page=per_page)
