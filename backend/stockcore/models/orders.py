from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from stockcore.time_utils import to_utc_z


# Payment status tracks money owed
PAYMENT_PENDING = "pending"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"
PAYMENT_CANCELLED = "cancelled"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_PAID, PAYMENT_CANCELLED)

# Lifecycle status (purchases only) tracks physical fulfillment
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"
PURCHASE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_DELIVERED, STATUS_CANCELLED)

PAYMENT_METHODS = ("cash", "credit card", "bank transfer", "check", "online", "other")

STOCK_DECREASING = "stock-decreasing"
STOCK_INCREASING = "stock-increasing"


@dataclass(frozen=True)
class OrderKind:
    """
    Tagged variant describing how one kind of order behaves.

    Sale and Purchase share one Order table and one code path; everything
    that differs between them lives here instead of in parallel functions.
    """
    name: str
    direction: str
    ledger_cause: str
    prefix_config_key: str
    default_price_field: str
    checks_stock: bool
    moves_stock_on_create: bool
    tracks_change: bool
    allows_shipping: bool

    @property
    def sign(self) -> int:
        return -1 if self.direction == STOCK_DECREASING else 1


SALE = OrderKind(
    name="sale",
    direction=STOCK_DECREASING,
    ledger_cause="sale",
    prefix_config_key="SALE_INVOICE_PREFIX",
    default_price_field="selling_price_cents",
    checks_stock=True,
    moves_stock_on_create=True,
    tracks_change=True,
    allows_shipping=False,
)

PURCHASE = OrderKind(
    name="purchase",
    direction=STOCK_INCREASING,
    ledger_cause="purchase-delivery",
    prefix_config_key="PURCHASE_INVOICE_PREFIX",
    default_price_field="purchase_price_cents",
    checks_stock=False,
    moves_stock_on_create=False,
    tracks_change=False,
    allows_shipping=True,
)


class Order(db.Model):
    """
    Order document shared by sales and purchases (single-table inheritance).

    The row is written in the same atomic scope as its stock side effect, so
    it only becomes visible once stock, ledger and money fields agree. After
    cancellation only reversal bookkeeping fields change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_kind_date", "kind", "order_date"),
        db.Index("ix_orders_kind_payment_status", "kind", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, index=True)

    # Human-readable identifier, e.g. "INV-260118-0001"
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Money (all amounts in cents; tax_rate is a percentage)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    due_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    # Lifecycle status, purchases only
    status = db.Column(db.String(16), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {
        "polymorphic_on": kind,
        "version_id_col": version_id,
    }

    @property
    def is_cancelled(self) -> bool:
        return self.payment_status == PAYMENT_CANCELLED

    def _money_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else "0",
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "due_cents": self.due_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
        }

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "invoice_number": self.invoice_number,
            "order_date": to_utc_z(self.order_date),
            **self._money_dict(),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class Sale(Order):
    """Stock-decreasing order. Stock leaves at creation."""

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    __mapper_args__ = {"polymorphic_identity": SALE.name}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = super().to_dict(include_lines=include_lines)
        data["customer"] = {
            "name": self.customer_name,
            "phone": self.customer_phone,
            "email": self.customer_email,
        }
        data["change_cents"] = self.change_cents
        return data


class Purchase(Order):
    """Stock-increasing order. Stock arrives at delivery, not at creation."""

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    supplier = db.relationship("Supplier")

    __mapper_args__ = {"polymorphic_identity": PURCHASE.name}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = super().to_dict(include_lines=include_lines)
        data.update({
            "status": self.status,
            "supplier_id": self.supplier_id,
            "shipping_cents": self.shipping_cents,
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "actual_delivery_date": to_utc_z(self.actual_delivery_date),
        })
        return data


class OrderLine(db.Model):
    """Line item owned by an order; product is a weak reference by id."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_order_lines_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship(
        "Order",
        backref=db.backref(
            "lines",
            lazy=True,
            order_by="OrderLine.position",
            cascade="all, delete-orphan",
        ),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": product.sku if product else None,
            "product_name": product.name if product else None,
            "position": self.position,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


ORDER_MODELS = {SALE.name: Sale, PURCHASE.name: Purchase}
