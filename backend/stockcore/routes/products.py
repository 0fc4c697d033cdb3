# Overview: Flask API routes for products; catalog CRUD plus per-product ledger and stock audit.

# backend/stockcore/routes/products.py
"""
Product catalog routes.

SECURITY:
- Reads are open to every role
- Writes require admin or manager
- quantity is only writable at creation (opening balance); afterwards stock
  changes go through sales, purchases and stock adjustments
"""
from flask import Blueprint, request, g, jsonify, current_app

from ..services import catalog_service
from ..services import ledger_service
from ..models import Product
from ..errors import InventoryError, error_response
from ..validation import ModelValidationPolicy, validate_payload
from ..request_args import (
    pagination_args,
    date_range_args,
    optional_int_arg,
    bool_arg,
    serialize_page,
)
from ..actor import ROLE_ADMIN, ROLE_MANAGER
from ..decorators import require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "barcode",
        "name",
        "description",
        "category_id",
        "purchase_price_cents",
        "selling_price_cents",
        "min_quantity",
        "quantity",
        "unit",
        "unit_value",
        "manufacturing_date",
        "expiry_date",
        "is_active",
    },
    required_on_create={"sku", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_role()
def list_products_route():
    """
    List products.

    Query params:
    - search: matches name, sku or barcode
    - category_id: products in one category
    - active_only: default true
    - low_stock_only: default false (quantity <= min_quantity)
    - page / per_page
    """
    try:
        page, per_page = pagination_args()
        result = catalog_service.list_products(
            search=request.args.get("search"),
            active_only=bool_arg("active_only", True),
            low_stock_only=bool_arg("low_stock_only", False),
            category_id=optional_int_arg("category_id"),
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_product_route():
    """Create a product, optionally with an opening quantity."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(patch=patch, actor=g.actor)
        return {"product": product.to_dict()}, 201
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_role()
def get_product_route(product_id: int):
    try:
        return {"product": catalog_service.get_product(product_id).to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_product_route(product_id: int):
    """Update descriptive and price fields; quantity is rejected."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(product_id, patch)
        return {"product": product.to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def deactivate_product_route(product_id: int):
    """Soft delete: the product is deactivated, never removed."""
    try:
        product = catalog_service.deactivate_product(product_id)
        return {"product": product.to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/ledger")
@require_role()
def product_ledger_route(product_id: int):
    """Stock ledger entries for one product, newest first."""
    try:
        catalog_service.get_product(product_id)
        page, per_page = pagination_args()
        from_date, to_date = date_range_args()
        result = ledger_service.list_ledger_entries(
            product_id=product_id,
            cause=request.args.get("cause"),
            from_date=from_date,
            to_date=to_date,
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list product ledger")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/stock-audit")
@require_role()
def product_stock_audit_route(product_id: int):
    """Compare quantity on hand with the sum of the product's ledger entries."""
    try:
        return {"audit": ledger_service.audit_product_stock(product_id)}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to audit product stock")
        return jsonify({"error": "Internal server error"}), 500
