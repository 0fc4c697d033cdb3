# Overview: Flask API routes for product categories; parses input and returns JSON responses.

from flask import Blueprint, request, g, jsonify, current_app

from ..services import catalog_service
from ..models import Category
from ..errors import InventoryError, error_response
from ..validation import ModelValidationPolicy, validate_payload
from ..request_args import pagination_args, bool_arg, serialize_page
from ..actor import ROLE_ADMIN, ROLE_MANAGER
from ..decorators import require_role

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_role()
def list_categories_route():
    try:
        page, per_page = pagination_args()
        result = catalog_service.list_categories(
            active_only=bool_arg("active_only", True),
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.post("")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch=patch, actor=g.actor)
        return {"category": category.to_dict()}, 201
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>")
@require_role()
def get_category_route(category_id: int):
    try:
        return {"category": catalog_service.get_category(category_id).to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>/products")
@require_role()
def list_category_products_route(category_id: int):
    """Active products in one category; 404 if the category does not exist."""
    try:
        catalog_service.get_category(category_id)
        page, per_page = pagination_args()
        result = catalog_service.list_products(category_id=category_id, page=page, per_page=per_page)
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list category products")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.patch("/<int:category_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id, patch)
        return {"category": category.to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
@require_role(ROLE_ADMIN)
def deactivate_category_route(category_id: int):
    """Soft delete. Admin only."""
    try:
        category = catalog_service.deactivate_category(category_id)
        return {"category": category.to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate category")
        return jsonify({"error": "Internal server error"}), 500
