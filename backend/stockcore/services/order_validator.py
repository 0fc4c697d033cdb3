# Overview: Order Validator; checks proposed lines against the catalog and stock.

"""
Order Validator

Runs inside the same atomic scope that later mutates stock, so the snapshot
it checks is the one the mutation applies to. It never writes.

For every proposed line:
- quantity > 0 and unit_price_cents >= 0, else InvalidArgument
- the product exists and is active, else NotFound
- sales only: quantity on hand covers the requested quantity, summed over
  repeated lines of the same product, else InsufficientStock
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from ..extensions import db
from ..models import Product, Supplier
from ..models.orders import OrderKind
from ..errors import InvalidArgument, InsufficientStock, NotFound
from ..validation import coerce_int, coerce_money_cents, coerce_percent, MAX_PRICE_CENTS
from .concurrency import lock_for_update
from .money_service import line_total_cents

MAX_LINES_PER_ORDER = 500


@dataclass(frozen=True)
class ValidatedLine:
    position: int
    product_id: int
    sku: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class PaymentInputs:
    tax_rate: Decimal
    discount_cents: int
    shipping_cents: int
    paid_cents: int


@dataclass(frozen=True)
class _ProposedLine:
    position: int
    product_id: int
    quantity: int
    unit_price_cents: int | None


def _parse_lines(items: Any) -> list[_ProposedLine]:
    if not isinstance(items, (list, tuple)) or not items:
        raise InvalidArgument("At least one item is required", field="items")
    if len(items) > MAX_LINES_PER_ORDER:
        raise InvalidArgument(f"An order cannot have more than {MAX_LINES_PER_ORDER} items", field="items")

    proposed = []
    for position, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise InvalidArgument(f"Item {position} must be an object", field="items")
        if item.get("product_id") is None or item.get("quantity") is None:
            raise InvalidArgument(
                "Each item must have product_id and quantity",
                field="items",
                details={"position": position},
            )
        product_id = coerce_int(item["product_id"], "product_id", minimum=1)
        quantity = coerce_int(item["quantity"], "quantity")
        if quantity <= 0:
            raise InvalidArgument(
                "Item quantity must be greater than 0",
                field="quantity",
                details={"position": position, "product_id": product_id},
            )
        unit_price = item.get("unit_price_cents")
        if unit_price is not None:
            unit_price = coerce_int(unit_price, "unit_price_cents", maximum=MAX_PRICE_CENTS)
            if unit_price < 0:
                raise InvalidArgument(
                    "Item unit_price_cents must be >= 0",
                    field="unit_price_cents",
                    details={"position": position, "product_id": product_id},
                )
        proposed.append(_ProposedLine(position, product_id, quantity, unit_price))
    return proposed


def _load_products(product_ids: set[int]) -> dict[int, Product]:
    # Lock in id order so two scopes touching the same products cannot deadlock
    rows = (
        lock_for_update(
            db.session.query(Product)
            .populate_existing()
            .filter(Product.id.in_(product_ids))
            .order_by(Product.id.asc())
        )
        .all()
    )
    return {p.id: p for p in rows}


def validate_order_lines(kind: OrderKind, items: Sequence[dict]) -> list[ValidatedLine]:
    """
    Validate proposed lines for an order of the given kind.

    Returns normalized lines carrying the frozen unit price and line total.
    Unit price defaults to the product's catalog price for this kind.
    """
    proposed = _parse_lines(items)
    products = _load_products({p.product_id for p in proposed})

    for line in proposed:
        product = products.get(line.product_id)
        if product is None:
            raise NotFound("product", line.product_id)
        if not product.is_active:
            raise NotFound("product", line.product_id, f"Product with ID {line.product_id} is inactive")

    if kind.checks_stock:
        requested: dict[int, int] = {}
        for line in proposed:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.quantity < quantity:
                raise InsufficientStock(
                    product_id=product_id,
                    available=product.quantity,
                    requested=quantity,
                    sku=product.sku,
                )

    validated = []
    for line in proposed:
        product = products[line.product_id]
        unit_price = line.unit_price_cents
        if unit_price is None:
            unit_price = getattr(product, kind.default_price_field) or 0
        validated.append(ValidatedLine(
            position=line.position,
            product_id=line.product_id,
            sku=product.sku,
            quantity=line.quantity,
            unit_price_cents=unit_price,
            line_total_cents=line_total_cents(line.quantity, unit_price),
        ))
    return validated


def validate_payment_inputs(
    kind: OrderKind,
    *,
    tax_rate: Any = None,
    discount_cents: Any = None,
    shipping_cents: Any = None,
    paid_cents: Any = None,
) -> PaymentInputs:
    """Rejects negative or malformed money inputs (never clamps)."""
    shipping = coerce_money_cents(shipping_cents, "shipping_cents")
    if shipping and not kind.allows_shipping:
        raise InvalidArgument(f"shipping_cents is not allowed on a {kind.name}", field="shipping_cents")
    return PaymentInputs(
        tax_rate=coerce_percent(tax_rate),
        discount_cents=coerce_money_cents(discount_cents, "discount_cents"),
        shipping_cents=shipping,
        paid_cents=coerce_money_cents(paid_cents, "paid_cents"),
    )


def require_active_supplier(supplier_id: Any) -> Supplier:
    if supplier_id is None:
        raise InvalidArgument("supplier_id is required", field="supplier_id")
    supplier_id = coerce_int(supplier_id, "supplier_id", minimum=1)
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None or not supplier.is_active:
        raise NotFound("supplier", supplier_id, "Supplier not found")
    return supplier
