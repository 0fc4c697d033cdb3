# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

from flask import Blueprint, request, g, jsonify, current_app

from ..services import catalog_service
from ..models import Supplier
from ..errors import InventoryError, error_response
from ..validation import ModelValidationPolicy, validate_payload
from ..request_args import pagination_args, bool_arg, serialize_page
from ..actor import ROLE_ADMIN, ROLE_MANAGER
from ..decorators import require_role

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "notes", "is_active"},
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_role()
def list_suppliers_route():
    try:
        page, per_page = pagination_args()
        result = catalog_service.list_suppliers(
            search=request.args.get("search"),
            active_only=bool_arg("active_only", True),
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.post("")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = catalog_service.create_supplier(patch=patch, actor=g.actor)
        return {"supplier": supplier.to_dict()}, 201
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>")
@require_role()
def get_supplier_route(supplier_id: int):
    try:
        return {"supplier": catalog_service.get_supplier(supplier_id).to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.patch("/<int:supplier_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        supplier = catalog_service.update_supplier(supplier_id, patch)
        return {"supplier": supplier.to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def deactivate_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.deactivate_supplier(supplier_id)
        return {"supplier": supplier.to_dict()}
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate supplier")
        return jsonify({"error": "Internal server error"}), 500
