# Overview: Stock adjustments; manual increase/decrease corrections with a ledger trail.

from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import StockAdjustment, StockAdjustmentLine
from ..models.stock import (
    ADJUSTMENT_DECREASE,
    ADJUSTMENT_REASON_CODES,
    ADJUSTMENT_TYPES,
    CAUSE_ADJUSTMENT,
)
from ..errors import InvalidArgument, NotFound
from ..actor import ActorContext, actor_user_id
from ..validation import coerce_choice, coerce_int, coerce_text
from .concurrency import AtomicScope, run_atomic
from .document_service import next_document_number
from .ledger_service import append_stock_entry
from .order_validator import MAX_LINES_PER_ORDER
from .pagination import paginate_query
from .stock_service import apply_stock_delta, get_product
from stockcore.time_utils import utcnow


def _parse_adjustment_lines(product_id: Any, quantity: Any, items: Any) -> list[tuple[int, int]]:
    """Accepts either a single product_id/quantity pair or an items list."""
    if items is not None:
        if product_id is not None or quantity is not None:
            raise InvalidArgument("Provide either product_id/quantity or items, not both", field="items")
        if not isinstance(items, (list, tuple)) or not items:
            raise InvalidArgument("At least one item is required", field="items")
        if len(items) > MAX_LINES_PER_ORDER:
            raise InvalidArgument(f"An adjustment cannot have more than {MAX_LINES_PER_ORDER} items", field="items")
        pairs = []
        for item in items:
            if not isinstance(item, dict):
                raise InvalidArgument("Each item must be an object", field="items")
            pairs.append((item.get("product_id"), item.get("quantity")))
    else:
        if product_id is None or quantity is None:
            raise InvalidArgument("product_id and quantity are required", field="product_id")
        pairs = [(product_id, quantity)]

    lines = []
    for raw_product_id, raw_quantity in pairs:
        if raw_product_id is None or raw_quantity is None:
            raise InvalidArgument("Each item must have product_id and quantity", field="items")
        pid = coerce_int(raw_product_id, "product_id", minimum=1)
        qty = coerce_int(raw_quantity, "quantity")
        if qty <= 0:
            raise InvalidArgument("Adjustment quantity must be greater than 0", field="quantity")
        lines.append((pid, qty))
    return lines


def create_stock_adjustment(
    *,
    adjustment_type: Any,
    reason: Any,
    product_id: Any = None,
    quantity: Any = None,
    items: Any = None,
    reason_code: Any = None,
    notes: Any = None,
    actor: ActorContext | None = None,
) -> StockAdjustment:
    """
    Apply a manual stock correction atomically.

    Every line mutates stock and appends one ledger entry referencing the
    adjustment. A decrease that would take any product below zero raises
    InsufficientStock and nothing from the earlier lines survives.
    """
    adjustment_type = coerce_choice(adjustment_type, "adjustment_type", ADJUSTMENT_TYPES)
    reason = coerce_text(reason, "reason", required=True, max_length=255)
    reason_code = coerce_choice(reason_code, "reason_code", ADJUSTMENT_REASON_CODES, default="correction")
    notes = coerce_text(notes, "notes")
    lines = _parse_adjustment_lines(product_id, quantity, items)
    sign = -1 if adjustment_type == ADJUSTMENT_DECREASE else 1
    prefix = current_app.config["ADJUSTMENT_REFERENCE_PREFIX"]

    def _op(scope: AtomicScope) -> StockAdjustment:
        scope.checkpoint("validate")
        for pid, _ in lines:
            get_product(pid, require_active=True)

        scope.checkpoint("number")
        now = utcnow()
        adjustment = StockAdjustment(
            reference=next_document_number(prefix=prefix, on=now),
            adjustment_type=adjustment_type,
            reason_code=reason_code,
            reason=reason,
            notes=notes,
            adjusted_at=now,
            created_by_user_id=actor_user_id(actor),
        )
        db.session.add(adjustment)
        db.session.flush()

        scope.checkpoint("mutate-stock")
        for position, (pid, qty) in enumerate(lines, start=1):
            change = apply_stock_delta(pid, sign * qty)
            adjustment.lines.append(StockAdjustmentLine(
                product_id=pid,
                position=position,
                previous_quantity=change.previous_quantity,
                adjustment_quantity=change.quantity_delta,
                new_quantity=change.new_quantity,
            ))
            append_stock_entry(
                change=change,
                cause=CAUSE_ADJUSTMENT,
                adjustment_id=adjustment.id,
                reference=adjustment.reference,
                note=reason,
                actor_user_id=actor_user_id(actor),
                occurred_at=now,
            )

        scope.checkpoint("append-ledger")
        db.session.flush()
        return adjustment

    adjustment = run_atomic(_op, operation=f"stock adjustment ({adjustment_type})")
    current_app.logger.info(
        "stock adjustment %s committed: %s %d line(s)",
        adjustment.reference, adjustment.adjustment_type, len(adjustment.lines),
    )
    return adjustment


def get_stock_adjustment(adjustment_id: int) -> StockAdjustment:
    adjustment = db.session.query(StockAdjustment).filter_by(id=adjustment_id).first()
    if adjustment is None:
        raise NotFound("stock_adjustment", adjustment_id, "Stock adjustment not found")
    return adjustment


def list_stock_adjustments(
    *,
    product_id: Any = None,
    adjustment_type: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    q = db.session.query(StockAdjustment)
    if product_id is not None:
        pid = coerce_int(product_id, "product_id", minimum=1)
        q = q.filter(
            StockAdjustment.id.in_(
                db.session.query(StockAdjustmentLine.adjustment_id)
                .filter(StockAdjustmentLine.product_id == pid)
            )
        )
    if adjustment_type:
        q = q.filter(StockAdjustment.adjustment_type == coerce_choice(adjustment_type, "adjustment_type", ADJUSTMENT_TYPES))
    if from_date is not None:
        q = q.filter(StockAdjustment.adjusted_at >= from_date)
    if to_date is not None:
        q = q.filter(StockAdjustment.adjusted_at <= to_date)

    q = q.order_by(StockAdjustment.adjusted_at.desc(), StockAdjustment.id.desc())
    return paginate_query(q, page=page, per_page=per_page)
