# Overview: Product Stock Store; the only code path that changes Product.quantity.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..errors import InsufficientStock, NotFound, InvalidArgument
from .concurrency import lock_for_update


@dataclass(frozen=True)
class StockChange:
    product_id: int
    previous_quantity: int
    quantity_delta: int
    new_quantity: int


def get_product(product_id: int, *, require_active: bool = False, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound("product", product_id)
    if require_active and not product.is_active:
        raise NotFound("product", product_id, f"Product with ID {product_id} is inactive")
    return product


def apply_stock_delta(product_id: int, quantity_delta: int) -> StockChange:
    """
    Add quantity_delta to a product's quantity on hand.

    The decrement is a conditional UPDATE (quantity + delta >= 0 in the WHERE
    clause), so two racing writers can never both take the last units even if
    the earlier snapshot check passed for both. Must run inside run_atomic;
    the caller is responsible for writing the matching ledger entry.
    """
    if not isinstance(quantity_delta, int) or isinstance(quantity_delta, bool) or quantity_delta == 0:
        raise InvalidArgument("quantity_delta must be a non-zero integer", field="quantity_delta")

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            quantity=Product.quantity + quantity_delta,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if quantity_delta < 0:
        stmt = stmt.where(Product.quantity >= -quantity_delta)

    result = db.session.execute(stmt)
    if result.rowcount != 1:
        product = db.session.query(Product).populate_existing().filter_by(id=product_id).first()
        if product is None:
            raise NotFound("product", product_id)
        raise InsufficientStock(
            product_id=product_id,
            available=product.quantity,
            requested=-quantity_delta,
            sku=product.sku,
        )

    # Reload so any instance already in the session sees the new quantity/version
    product = db.session.get(Product, product_id, populate_existing=True)
    new_quantity = product.quantity
    return StockChange(
        product_id=product_id,
        previous_quantity=new_quantity - quantity_delta,
        quantity_delta=quantity_delta,
        new_quantity=new_quantity,
    )


def list_low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.quantity <= Product.min_quantity)
        .order_by(Product.quantity.asc(), Product.id.asc())
        .all()
    )
