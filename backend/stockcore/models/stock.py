from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import InvalidState
from stockcore.time_utils import to_utc_z


CAUSE_SALE = "sale"
CAUSE_PURCHASE_DELIVERY = "purchase-delivery"
CAUSE_ADJUSTMENT = "adjustment"
CAUSE_CANCELLATION_REVERSAL = "cancellation-reversal"
CAUSE_OPENING_BALANCE = "opening-balance"
LEDGER_CAUSES = (
    CAUSE_SALE,
    CAUSE_PURCHASE_DELIVERY,
    CAUSE_ADJUSTMENT,
    CAUSE_CANCELLATION_REVERSAL,
    CAUSE_OPENING_BALANCE,
)

ADJUSTMENT_INCREASE = "increase"
ADJUSTMENT_DECREASE = "decrease"
ADJUSTMENT_TYPES = (ADJUSTMENT_INCREASE, ADJUSTMENT_DECREASE)

ADJUSTMENT_REASON_CODES = ("damage", "loss", "return", "correction", "count", "other")


class StockLedgerEntry(db.Model):
    """
    Append-only record of one quantity change to one product.

    Exactly one entry is written per stock mutation, inside the same
    transaction as the mutation, so SUM(quantity_delta) per product always
    equals Product.quantity. Entries are never updated or deleted; reversals
    are new entries with the opposite sign.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_ledger_product_occurred", "product_id", "occurred_at"),
        db.CheckConstraint("quantity_delta <> 0", name="ck_stock_ledger_delta_nonzero"),
        db.CheckConstraint("balance_after >= 0", name="ck_stock_ledger_balance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    cause = db.Column(db.String(32), nullable=False, index=True)

    # What caused it (at most one of these is set)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=True, index=True)
    reference = db.Column(db.String(64), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "balance_after": self.balance_after,
            "cause": self.cause,
            "order_id": self.order_id,
            "adjustment_id": self.adjustment_id,
            "reference": self.reference,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(StockLedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise InvalidState("Stock ledger entries are append-only", state="immutable")


@event.listens_for(StockLedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise InvalidState("Stock ledger entries are append-only", state="immutable")


class StockAdjustment(db.Model):
    """Manual stock correction document."""
    __tablename__ = "stock_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), nullable=False, unique=True)
    adjustment_type = db.Column(db.String(16), nullable=False, index=True)  # increase, decrease
    reason_code = db.Column(db.String(32), nullable=False, default="correction")
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    adjusted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "adjustment_type": self.adjustment_type,
            "reason_code": self.reason_code,
            "reason": self.reason,
            "notes": self.notes,
            "adjusted_at": to_utc_z(self.adjusted_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [line.to_dict() for line in self.lines],
        }


class StockAdjustmentLine(db.Model):
    __tablename__ = "stock_adjustment_lines"
    __table_args__ = (
        db.CheckConstraint("previous_quantity >= 0", name="ck_adj_lines_previous_non_negative"),
        db.CheckConstraint("new_quantity >= 0", name="ck_adj_lines_new_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    previous_quantity = db.Column(db.Integer, nullable=False)
    adjustment_quantity = db.Column(db.Integer, nullable=False)  # signed
    new_quantity = db.Column(db.Integer, nullable=False)

    adjustment = db.relationship(
        "StockAdjustment",
        backref=db.backref(
            "lines",
            lazy=True,
            order_by="StockAdjustmentLine.position",
            cascade="all, delete-orphan",
        ),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "position": self.position,
            "previous_quantity": self.previous_quantity,
            "adjustment_quantity": self.adjustment_quantity,
            "new_quantity": self.new_quantity,
        }


class DocumentSequence(db.Model):
    """
    Atomic document counter, one row per (prefix, YYMMDD).

    Incremented with a single UPDATE inside the same transaction as the
    document it numbers, so two concurrent orders can never read the same
    "latest" number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "date_key", name="uq_doc_sequences_prefix_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    date_key = db.Column(db.String(6), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "date_key": self.date_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
