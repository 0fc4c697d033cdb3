# Overview: Compensating actions; cancel/deliver flows that reverse or complete stock effects.

"""
Compensating-Action Handler

Each flow is its own atomic scope and starts with a compare-and-swap on the
order's state, so a repeated or concurrent request can never apply the
stock effect twice:

- cancel_sale:      payment_status != cancelled -> cancelled, restock lines
- deliver_purchase: status pending|processing   -> delivered, receive lines
- cancel_purchase:  status pending              -> cancelled, no stock effect
"""

from __future__ import annotations

from flask import current_app

from ..models.orders import (
    SALE,
    PURCHASE,
    PAYMENT_CANCELLED,
    PAYMENT_PENDING,
    PAYMENT_PARTIAL,
    PAYMENT_PAID,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
)
from ..models.stock import CAUSE_CANCELLATION_REVERSAL
from ..actor import ActorContext, actor_user_id
from ..models import Sale, Purchase
from .concurrency import AtomicScope, run_atomic
from .transaction_service import apply_line_stock_effects, transition_order
from stockcore.time_utils import utcnow

OPEN_PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_PAID)
DELIVERABLE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)


def cancel_sale(sale_id: int, actor: ActorContext | None = None, reason: str | None = None) -> Sale:
    """Cancel a sale and put every line's quantity back on the shelf."""

    def _op(scope: AtomicScope) -> Sale:
        scope.checkpoint("validate")
        now = utcnow()
        sale = transition_order(
            SALE,
            sale_id,
            column="payment_status",
            allowed_from=OPEN_PAYMENT_STATUSES,
            values={
                "payment_status": PAYMENT_CANCELLED,
                "cancelled_at": now,
                "cancelled_by_user_id": actor_user_id(actor),
            },
            action="cancel",
        )
        apply_line_stock_effects(
            sale,
            sale.lines,
            sign=-SALE.sign,
            cause=CAUSE_CANCELLATION_REVERSAL,
            actor=actor,
            scope=scope,
            note=reason or f"Cancel sale {sale.invoice_number}",
        )
        return sale

    sale = run_atomic(_op, operation="cancel sale")
    current_app.logger.info("sale %s cancelled, %d line(s) restocked", sale.invoice_number, len(sale.lines))
    return sale


def receive_purchase(
    purchase_id: int,
    scope: AtomicScope,
    actor: ActorContext | None = None,
    delivered_at=None,
) -> Purchase:
    """
    Swap a purchase to delivered and receive its lines, inside the caller's scope.

    Only pending/processing purchases can be delivered. A second deliver
    request loses the status swap and fails with InvalidState, so stock is
    received exactly once.
    """
    purchase = transition_order(
        PURCHASE,
        purchase_id,
        column="status",
        allowed_from=DELIVERABLE_STATUSES,
        values={"status": STATUS_DELIVERED},
        action="deliver",
    )
    if purchase.actual_delivery_date is None:
        purchase.actual_delivery_date = delivered_at or utcnow()
    apply_line_stock_effects(
        purchase,
        purchase.lines,
        sign=PURCHASE.sign,
        cause=PURCHASE.ledger_cause,
        actor=actor,
        scope=scope,
        note=f"Purchase {purchase.invoice_number} delivered",
    )
    return purchase


def deliver_purchase(purchase_id: int, actor: ActorContext | None = None, delivered_at=None) -> Purchase:
    """Mark a purchase delivered and receive its lines into stock."""

    def _op(scope: AtomicScope) -> Purchase:
        scope.checkpoint("validate")
        return receive_purchase(purchase_id, scope, actor, delivered_at)

    purchase = run_atomic(_op, operation="deliver purchase")
    current_app.logger.info("purchase %s delivered, %d line(s) received", purchase.invoice_number, len(purchase.lines))
    return purchase


def cancel_purchase(purchase_id: int, actor: ActorContext | None = None) -> Purchase:
    """Cancel a purchase that has not been received; stock is untouched."""

    def _op(scope: AtomicScope) -> Purchase:
        scope.checkpoint("validate")
        return transition_order(
            PURCHASE,
            purchase_id,
            column="status",
            allowed_from=(STATUS_PENDING,),
            values={
                "status": STATUS_CANCELLED,
                "payment_status": PAYMENT_CANCELLED,
                "cancelled_at": utcnow(),
                "cancelled_by_user_id": actor_user_id(actor),
            },
            action="cancel",
        )

    purchase = run_atomic(_op, operation="cancel purchase")
    current_app.logger.info("purchase %s cancelled", purchase.invoice_number)
    return purchase
