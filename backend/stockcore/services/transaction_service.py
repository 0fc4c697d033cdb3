# Overview: Transaction Coordinator; one atomic path for every order that moves stock.

"""
Transaction Coordinator

place_order() runs, inside one run_atomic() scope:

    validate -> number -> stage order -> mutate stock -> append ledger
             -> compute money -> persist order -> commit

Sales and purchases take the same path; the OrderKind decides the stock
direction, which money fields apply, and whether stock moves at creation
(sales) or later at delivery (purchases).

Any failure after "validate" rolls the whole scope back, stock and ledger
included, and the original exception reaches the caller unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Sequence

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Order, OrderLine
from ..models.orders import OrderKind, ORDER_MODELS, PAYMENT_METHODS
from ..errors import InvalidState, NotFound
from ..actor import ActorContext, actor_user_id
from ..validation import coerce_choice
from .concurrency import AtomicScope, run_atomic
from .document_service import next_document_number
from .ledger_service import append_stock_entry
from .money_service import compute_order_money
from .order_validator import ValidatedLine, validate_order_lines, validate_payment_inputs
from .stock_service import apply_stock_delta
from stockcore.time_utils import utcnow


@dataclass
class OrderDraft:
    """Everything a client proposes for a new order, before validation."""
    kind: OrderKind
    items: Sequence[dict]
    tax_rate: Any = None
    discount_cents: Any = None
    shipping_cents: Any = None
    paid_cents: Any = None
    payment_method: Any = None
    order_date: datetime | None = None
    notes: str | None = None
    attributes: dict = field(default_factory=dict)


def apply_line_stock_effects(
    order: Order,
    lines: Sequence,
    *,
    sign: int,
    cause: str,
    actor: ActorContext | None,
    scope: AtomicScope,
    note: str | None = None,
) -> list:
    """
    Mutate stock for every line and append one ledger entry per mutation.

    `lines` may be ValidatedLine or OrderLine rows; only product_id and
    quantity are read. Raises InsufficientStock if a decrement would take a
    product below zero (only possible under a race).
    """
    scope.checkpoint("mutate-stock")
    entries = []
    for line in lines:
        change = apply_stock_delta(line.product_id, sign * line.quantity)
        entries.append(append_stock_entry(
            change=change,
            cause=cause,
            order_id=order.id,
            reference=order.invoice_number,
            note=note,
            actor_user_id=actor_user_id(actor),
        ))
    scope.checkpoint("append-ledger")
    return entries


def replace_order_lines(order: Order, lines: Sequence[ValidatedLine]) -> None:
    order.lines[:] = [
        OrderLine(
            product_id=line.product_id,
            position=line.position,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line.line_total_cents,
        )
        for line in lines
    ]


def place_order(
    draft: OrderDraft,
    actor: ActorContext | None = None,
    *,
    prevalidate: Callable[[], dict] | None = None,
) -> Order:
    """
    Create an order and its stock side effect as one atomic unit.

    prevalidate runs first inside the scope and may return extra model
    attributes (e.g. a verified supplier_id).
    """
    kind = draft.kind
    model_cls = ORDER_MODELS[kind.name]
    prefix = current_app.config[kind.prefix_config_key]

    def _op(scope: AtomicScope) -> Order:
        scope.checkpoint("validate")
        attributes = dict(draft.attributes)
        if prevalidate is not None:
            attributes.update(prevalidate() or {})
        payment = validate_payment_inputs(
            kind,
            tax_rate=draft.tax_rate,
            discount_cents=draft.discount_cents,
            shipping_cents=draft.shipping_cents,
            paid_cents=draft.paid_cents,
        )
        payment_method = coerce_choice(draft.payment_method, "payment_method", PAYMENT_METHODS, default="cash")
        lines = validate_order_lines(kind, draft.items)

        scope.checkpoint("number")
        order_date = draft.order_date or utcnow()
        order = model_cls(
            invoice_number=next_document_number(prefix=prefix, on=order_date),
            order_date=order_date,
            payment_method=payment_method,
            notes=draft.notes,
            created_by_user_id=actor_user_id(actor),
            **attributes,
        )
        db.session.add(order)
        db.session.flush()  # order.id for the ledger; invisible until commit

        if kind.moves_stock_on_create:
            apply_line_stock_effects(
                order,
                lines,
                sign=kind.sign,
                cause=kind.ledger_cause,
                actor=actor,
                scope=scope,
            )

        scope.checkpoint("compute-money")
        money = compute_order_money(
            kind,
            [line.line_total_cents for line in lines],
            tax_rate=payment.tax_rate,
            discount_cents=payment.discount_cents,
            shipping_cents=payment.shipping_cents,
            paid_cents=payment.paid_cents,
        )

        scope.checkpoint("persist-order")
        for key, value in money.as_order_fields().items():
            setattr(order, key, value)
        replace_order_lines(order, lines)
        db.session.flush()
        return order

    order = run_atomic(_op, operation=f"create {kind.name}")
    current_app.logger.info(
        "%s %s committed: %d line(s), total_cents=%s",
        kind.name, order.invoice_number, len(order.lines), order.total_cents,
    )
    return order


def load_order(kind: OrderKind, order_id: int) -> Order:
    model_cls = ORDER_MODELS[kind.name]
    order = db.session.query(model_cls).populate_existing().filter_by(id=order_id).first()
    if order is None:
        raise NotFound(kind.name, order_id, f"{kind.name.capitalize()} not found")
    return order


def transition_order(
    kind: OrderKind,
    order_id: int,
    *,
    column: str,
    allowed_from: Sequence[str],
    values: dict,
    action: str,
) -> Order:
    """
    Compare-and-swap a lifecycle field inside the current scope.

    The UPDATE only matches while `column` still holds one of allowed_from,
    so of two racing or replayed requests exactly one wins; the loser gets
    InvalidState and touches nothing. Returns the refreshed order.
    """
    model_cls = ORDER_MODELS[kind.name]
    col = getattr(Order, column)
    stmt = (
        update(Order)
        .where(
            Order.id == order_id,
            Order.kind == kind.name,
            col.in_(tuple(allowed_from)),
        )
        .values(version_id=Order.version_id + 1, **values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        current = db.session.query(col).filter(Order.id == order_id, Order.kind == kind.name).first()
        if current is None:
            raise NotFound(kind.name, order_id, f"{kind.name.capitalize()} not found")
        raise InvalidState(
            f"Cannot {action} a {kind.name} with {column} {current[0]!r}",
            state=current[0],
        )
    return (
        db.session.query(model_cls)
        .populate_existing()
        .filter_by(id=order_id)
        .one()
    )
