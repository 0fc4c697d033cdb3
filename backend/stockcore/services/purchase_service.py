"""
Purchase Service - stock-increasing orders

A purchase is recorded with no stock effect. Stock arrives only when the
purchase is delivered (compensation_service.deliver_purchase), which is why
cancelling a pending purchase never has to reverse anything.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Purchase
from ..models.orders import (
    PURCHASE,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PURCHASE_STATUSES,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_DELIVERED,
)
from ..errors import InvalidArgument, InvalidState
from ..actor import ActorContext
from ..validation import coerce_choice, coerce_datetime, coerce_int, coerce_text
from .concurrency import AtomicScope, run_atomic
from .compensation_service import receive_purchase
from .money_service import compute_order_money
from .order_validator import require_active_supplier, validate_order_lines, validate_payment_inputs
from .pagination import paginate_query
from .transaction_service import OrderDraft, load_order, place_order, replace_order_lines, transition_order

EDITABLE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)
LINE_FIELDS = {"items", "tax_rate", "discount_cents", "shipping_cents"}
PURCHASE_UPDATABLE_FIELDS = LINE_FIELDS | {
    "paid_cents",
    "payment_method",
    "notes",
    "expected_delivery_date",
    "status",
}


def create_purchase(
    *,
    supplier_id: Any,
    items: list[dict],
    tax_rate=None,
    discount_cents=None,
    shipping_cents=None,
    paid_cents=None,
    payment_method: str | None = None,
    purchase_date: datetime | str | None = None,
    expected_delivery_date: datetime | str | None = None,
    notes: str | None = None,
    actor: ActorContext | None = None,
) -> Purchase:
    """Create a pending purchase. Stock is not touched until delivery."""

    def _check_supplier() -> dict:
        supplier = require_active_supplier(supplier_id)
        return {"supplier_id": supplier.id}

    draft = OrderDraft(
        kind=PURCHASE,
        items=items,
        tax_rate=tax_rate,
        discount_cents=discount_cents,
        shipping_cents=shipping_cents,
        paid_cents=paid_cents,
        payment_method=payment_method,
        order_date=coerce_datetime(purchase_date, "purchase_date"),
        notes=coerce_text(notes, "notes"),
        attributes={
            "status": STATUS_PENDING,
            "expected_delivery_date": coerce_datetime(expected_delivery_date, "expected_delivery_date"),
        },
    )
    return place_order(draft, actor, prevalidate=_check_supplier)


def get_purchase(purchase_id: int) -> Purchase:
    return load_order(PURCHASE, purchase_id)


def _recompute_money(purchase: Purchase, patch: dict) -> None:
    payment = validate_payment_inputs(
        PURCHASE,
        tax_rate=patch.get("tax_rate", purchase.tax_rate),
        discount_cents=patch.get("discount_cents", purchase.discount_cents),
        shipping_cents=patch.get("shipping_cents", purchase.shipping_cents),
        paid_cents=patch.get("paid_cents", purchase.paid_cents),
    )
    line_totals = [line.line_total_cents for line in purchase.lines]
    if "items" in patch:
        lines = validate_order_lines(PURCHASE, patch["items"])
        replace_order_lines(purchase, lines)
        line_totals = [line.line_total_cents for line in lines]

    money = compute_order_money(
        PURCHASE,
        line_totals,
        tax_rate=payment.tax_rate,
        discount_cents=payment.discount_cents,
        shipping_cents=payment.shipping_cents,
        paid_cents=payment.paid_cents,
    )
    for key, value in money.as_order_fields().items():
        setattr(purchase, key, value)


def update_purchase(purchase_id: int, patch: dict, actor: ActorContext | None = None) -> Purchase:
    """
    Apply a partial update to a purchase.

    - items/tax/discount/shipping only while pending or processing
    - payment fields in any non-cancelled state
    - status pending -> processing, or delivered; delivery runs in the same
      scope as the edits so a failed delivery leaves the purchase untouched
    """
    if not isinstance(patch, dict):
        raise InvalidArgument("Invalid JSON payload")
    for key in patch:
        if key not in PURCHASE_UPDATABLE_FIELDS:
            raise InvalidArgument(f"Field not allowed: {key}", field=key)

    new_status = None
    if patch.get("status") is not None:
        new_status = coerce_choice(patch["status"], "status", PURCHASE_STATUSES)
        if new_status not in (STATUS_PROCESSING, STATUS_DELIVERED):
            raise InvalidArgument(
                "status can only be set to processing or delivered; use cancel to cancel",
                field="status",
            )

    fields = {k: v for k, v in patch.items() if k != "status"}

    def _op(scope: AtomicScope) -> Purchase:
        scope.checkpoint("validate")
        purchase = load_order(PURCHASE, purchase_id)
        if purchase.is_cancelled:
            raise InvalidState("Cancelled purchase cannot be updated", state=purchase.status)
        if fields.keys() & LINE_FIELDS and purchase.status not in EDITABLE_STATUSES:
            raise InvalidState(
                f"Items and amounts cannot change on a {purchase.status} purchase",
                state=purchase.status,
            )

        if "notes" in fields:
            purchase.notes = coerce_text(fields["notes"], "notes")
        if "payment_method" in fields:
            purchase.payment_method = coerce_choice(fields["payment_method"], "payment_method", PAYMENT_METHODS)
        if "expected_delivery_date" in fields:
            purchase.expected_delivery_date = coerce_datetime(
                fields["expected_delivery_date"], "expected_delivery_date"
            )
        if fields.keys() & (LINE_FIELDS | {"paid_cents"}):
            scope.checkpoint("compute-money")
            _recompute_money(purchase, fields)

        scope.checkpoint("persist-order")
        db.session.flush()

        if new_status == STATUS_PROCESSING and purchase.status != STATUS_PROCESSING:
            purchase = transition_order(
                PURCHASE,
                purchase_id,
                column="status",
                allowed_from=(STATUS_PENDING,),
                values={"status": STATUS_PROCESSING},
                action="start processing",
            )
        elif new_status == STATUS_DELIVERED:
            purchase = receive_purchase(purchase_id, scope, actor)
        return purchase

    purchase = run_atomic(_op, operation="update purchase")
    if new_status == STATUS_DELIVERED:
        current_app.logger.info(
            "purchase %s delivered, %d line(s) received", purchase.invoice_number, len(purchase.lines)
        )
    return purchase


def list_purchases(
    *,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    supplier_id: Any = None,
    status: str | None = None,
    payment_status: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    q = db.session.query(Purchase)
    if from_date is not None:
        q = q.filter(Purchase.order_date >= from_date)
    if to_date is not None:
        q = q.filter(Purchase.order_date <= to_date)
    if supplier_id is not None:
        q = q.filter(Purchase.supplier_id == coerce_int(supplier_id, "supplier_id", minimum=1))
    if status:
        q = q.filter(Purchase.status == coerce_choice(status, "status", PURCHASE_STATUSES))
    if payment_status:
        q = q.filter(Purchase.payment_status == coerce_choice(payment_status, "payment_status", PAYMENT_STATUSES))

    q = q.order_by(Purchase.order_date.desc(), Purchase.id.desc())
    return paginate_query(q, page=page, per_page=per_page)
