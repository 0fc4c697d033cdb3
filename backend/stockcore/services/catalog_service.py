# backend/stockcore/services/catalog_service.py
"""
Catalog Service - categories, products and suppliers

Thin master-data layer around the stock core. Products are never hard
deleted and their quantity is never patched directly: the only ways stock
moves are sales, deliveries, cancellations, adjustments and the opening
balance written here at creation.
"""
from __future__ import annotations


from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, Supplier
from ..models.stock import CAUSE_OPENING_BALANCE
from ..errors import Conflict, InvalidArgument, NotFound
from ..actor import ActorContext, actor_user_id
from ..validation import coerce_int, enforce_rules_product
from .concurrency import AtomicScope, run_atomic
from .ledger_service import append_stock_entry
from .pagination import paginate_query
from .stock_service import apply_stock_delta

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "barcode",
    "name",
    "description",
    "category_id",
    "purchase_price_cents",
    "selling_price_cents",
    "min_quantity",
    "unit",
    "unit_value",
    "manufacturing_date",
    "expiry_date",
    "is_active",
}
SUPPLIER_MUTABLE_FIELDS = {"name", "contact_person", "email", "phone", "address", "notes", "is_active"}
CATEGORY_MUTABLE_FIELDS = {"name", "description", "is_active"}


def _ensure_unique_category_name(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise Conflict("name", name, "Category with this name already exists")


def create_category(*, patch: dict, actor: ActorContext | None = None) -> Category:
    if not patch.get("name"):
        raise InvalidArgument("Category name is required", field="name")
    _ensure_unique_category_name(patch["name"])
    c = Category(created_by_user_id=actor_user_id(actor))
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    db.session.add(c)
    db.session.commit()
    return c


def get_category(category_id: int, *, require_active: bool = False) -> Category:
    c = db.session.query(Category).filter_by(id=category_id).first()
    if c is None or (require_active and not c.is_active):
        raise NotFound("category", category_id, "Category not found")
    return c


def update_category(category_id: int, patch: dict) -> Category:
    c = get_category(category_id)
    if "name" in patch:
        if not patch["name"]:
            raise InvalidArgument("Category name is required", field="name")
        _ensure_unique_category_name(patch["name"], exclude_id=c.id)
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    db.session.commit()
    return c


def deactivate_category(category_id: int) -> Category:
    """Products keep their category_id; the category just stops being offered."""
    return update_category(category_id, {"is_active": False})


def list_categories(*, active_only: bool = True, page: int = 1, per_page: int = 10) -> dict:
    q = db.session.query(Category)
    if active_only:
        q = q.filter(Category.is_active.is_(True))
    q = q.order_by(Category.name.asc(), Category.id.asc())
    return paginate_query(q, page=page, per_page=per_page)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique_product_fields(patch: dict, exclude_id: int | None = None) -> None:
    for field in ("sku", "barcode"):
        value = patch.get(field)
        if value is None:
            continue
        q = db.session.query(Product.id).filter(getattr(Product, field) == value)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first() is not None:
            raise Conflict(field, value, f"{field} already exists")


def _ensure_category_assignable(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None:
        get_category(coerce_int(category_id, "category_id", minimum=1), require_active=True)


def create_product(*, patch: dict, actor: ActorContext | None = None) -> Product:
    """
    Create a product from a validated patch.

    An opening quantity is booked through the stock store with an
    opening-balance ledger entry, in the same transaction as the product row.

    Raises:
        InvalidArgument: missing sku/name or negative values
        Conflict: sku or barcode already in use
    """
    patch = dict(patch)
    opening_quantity = coerce_int(patch.pop("quantity", 0) or 0, "quantity", minimum=0)
    enforce_rules_product(patch)
    if not patch.get("sku"):
        raise InvalidArgument("sku is required", field="sku")
    if not patch.get("name"):
        raise InvalidArgument("name is required", field="name")

    def _op(scope: AtomicScope) -> Product:
        scope.checkpoint("validate")
        _ensure_unique_product_fields(patch)
        _ensure_category_assignable(patch)

        p = Product(quantity=0, created_by_user_id=actor_user_id(actor))
        apply_product_patch(p, patch)
        db.session.add(p)
        try:
            db.session.flush()  # ensure p.id exists before the opening balance
        except IntegrityError as exc:
            raise Conflict("sku", patch.get("sku"), "sku or barcode already exists") from exc

        if opening_quantity:
            change = apply_stock_delta(p.id, opening_quantity)
            append_stock_entry(
                change=change,
                cause=CAUSE_OPENING_BALANCE,
                reference=p.sku,
                note="Opening balance",
                actor_user_id=actor_user_id(actor),
            )
        return p

    product = run_atomic(_op, operation="create product")
    current_app.logger.info("product %s created with opening quantity %d", product.sku, opening_quantity)
    return product


def get_product(product_id: int) -> Product:
    p = db.session.query(Product).filter_by(id=product_id).first()
    if p is None:
        raise NotFound("product", product_id, "Product not found")
    return p


def update_product(product_id: int, patch: dict) -> Product:
    """Descriptive and price fields only; quantity goes through adjustments."""
    if "quantity" in patch:
        raise InvalidArgument(
            "quantity cannot be changed directly; use a stock adjustment",
            field="quantity",
        )
    patch = dict(patch)
    enforce_rules_product(patch)

    def _op(scope: AtomicScope) -> Product:
        scope.checkpoint("validate")
        p = get_product(product_id)
        _ensure_unique_product_fields(patch, exclude_id=p.id)
        _ensure_category_assignable(patch)
        apply_product_patch(p, patch)
        db.session.flush()
        return p

    return run_atomic(_op, operation="update product")


def deactivate_product(product_id: int) -> Product:
    """Soft delete; history keeps referencing the row."""
    return update_product(product_id, {"is_active": False})


def list_products(
    *,
    search: str | None = None,
    active_only: bool = True,
    low_stock_only: bool = False,
    category_id=None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    q = db.session.query(Product)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    if low_stock_only:
        q = q.filter(Product.quantity <= Product.min_quantity)
    if category_id is not None:
        q = q.filter(Product.category_id == coerce_int(category_id, "category_id", minimum=1))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.barcode.ilike(like),
        ))

    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate_query(q, page=page, per_page=per_page)


def apply_supplier_patch(s: Supplier, patch: dict) -> None:
    for k, v in patch.items():
        if k not in SUPPLIER_MUTABLE_FIELDS:
            continue
        setattr(s, k, v)


def create_supplier(*, patch: dict, actor: ActorContext | None = None) -> Supplier:
    if not patch.get("name"):
        raise InvalidArgument("Supplier name is required", field="name")
    s = Supplier(created_by_user_id=actor_user_id(actor))
    apply_supplier_patch(s, patch)
    db.session.add(s)
    db.session.commit()
    return s


def get_supplier(supplier_id: int) -> Supplier:
    s = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if s is None:
        raise NotFound("supplier", supplier_id, "Supplier not found")
    return s


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    s = get_supplier(supplier_id)
    if "name" in patch and not patch["name"]:
        raise InvalidArgument("Supplier name is required", field="name")
    apply_supplier_patch(s, patch)
    db.session.commit()
    return s


def deactivate_supplier(supplier_id: int) -> Supplier:
    return update_supplier(supplier_id, {"is_active": False})


def list_suppliers(
    *,
    search: str | None = None,
    active_only: bool = True,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    q = db.session.query(Supplier)
    if active_only:
        q = q.filter(Supplier.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Supplier.name.ilike(like), Supplier.contact_person.ilike(like)))

    q = q.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate_query(q, page=page, per_page=per_page)
