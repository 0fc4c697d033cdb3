# Overview: Stock Ledger; append-only quantity history and store cross-checks.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockLedgerEntry
from ..models.stock import LEDGER_CAUSES
from ..errors import InvalidArgument, NotFound
from .pagination import paginate_query
from .stock_service import StockChange
from stockcore.time_utils import utcnow
"""
Stock Ledger invariants (authoritative)

- Append-only: one entry per stock mutation, never updated or deleted
  (enforced by ORM listeners on StockLedgerEntry).
- Entries are written inside the same DB transaction as the mutation they
  record, so readers never see one without the other.
- SUM(quantity_delta) over a product's entries equals Product.quantity;
  audit_product_stock() checks exactly that.
- balance_after is the quantity on hand right after the entry.
"""


def append_stock_entry(
    *,
    change: StockChange,
    cause: str,
    order_id: int | None = None,
    adjustment_id: int | None = None,
    reference: str | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
    occurred_at: datetime | None = None,
) -> StockLedgerEntry:
    """Append the ledger entry for a StockChange. No commit."""
    if cause not in LEDGER_CAUSES:
        raise InvalidArgument(f"Unknown ledger cause {cause!r}", field="cause")

    entry = StockLedgerEntry(
        product_id=change.product_id,
        quantity_delta=change.quantity_delta,
        balance_after=change.new_quantity,
        cause=cause,
        order_id=order_id,
        adjustment_id=adjustment_id,
        reference=reference,
        note=note,
        created_by_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_ledger_entries(
    *,
    product_id: int | None = None,
    cause: str | None = None,
    order_id: int | None = None,
    adjustment_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    q = db.session.query(StockLedgerEntry)
    if product_id is not None:
        q = q.filter(StockLedgerEntry.product_id == product_id)
    if cause:
        if cause not in LEDGER_CAUSES:
            raise InvalidArgument(f"Unknown ledger cause {cause!r}", field="cause")
        q = q.filter(StockLedgerEntry.cause == cause)
    if order_id is not None:
        q = q.filter(StockLedgerEntry.order_id == order_id)
    if adjustment_id is not None:
        q = q.filter(StockLedgerEntry.adjustment_id == adjustment_id)
    if from_date is not None:
        q = q.filter(StockLedgerEntry.occurred_at >= from_date)
    if to_date is not None:
        q = q.filter(StockLedgerEntry.occurred_at <= to_date)

    q = q.order_by(StockLedgerEntry.occurred_at.desc(), StockLedgerEntry.id.desc())
    return paginate_query(q, page=page, per_page=per_page)


def reconstruct_quantity(product_id: int, as_of: datetime | None = None) -> int:
    """
    Quantity on hand rebuilt from the ledger alone.

    as_of filtering is inclusive: occurred_at <= as_of.
    """
    q = db.session.query(
        func.coalesce(func.sum(StockLedgerEntry.quantity_delta), 0)
    ).filter(StockLedgerEntry.product_id == product_id)
    if as_of is not None:
        q = q.filter(StockLedgerEntry.occurred_at <= as_of)
    return int(q.scalar() or 0)


def audit_product_stock(product_id: int) -> dict:
    """Compare the Product Stock Store with the ledger for one product."""
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound("product", product_id)

    ledger_quantity = reconstruct_quantity(product_id)
    entry_count = (
        db.session.query(func.count(StockLedgerEntry.id))
        .filter(StockLedgerEntry.product_id == product_id)
        .scalar()
    )
    return {
        "product_id": product.id,
        "sku": product.sku,
        "store_quantity": product.quantity,
        "ledger_quantity": ledger_quantity,
        "entry_count": int(entry_count or 0),
        "consistent": ledger_quantity == product.quantity,
    }


def audit_all_stock() -> list[dict]:
    """Cross-check every product; returns one row per product."""
    sums = dict(
        db.session.query(
            StockLedgerEntry.product_id,
            func.coalesce(func.sum(StockLedgerEntry.quantity_delta), 0),
        )
        .group_by(StockLedgerEntry.product_id)
        .all()
    )
    rows = []
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        ledger_quantity = int(sums.get(product.id, 0))
        rows.append({
            "product_id": product.id,
            "sku": product.sku,
            "store_quantity": product.quantity,
            "ledger_quantity": ledger_quantity,
            "consistent": ledger_quantity == product.quantity,
        })
    return rows
