# Overview: Flask API routes for manual stock adjustments.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import adjustment_service
from ..errors import InventoryError, error_response
from ..request_args import pagination_args, date_range_args, optional_int_arg, serialize_page
from ..actor import ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY
from ..decorators import require_role


stock_adjustments_bp = Blueprint("stock_adjustments", __name__, url_prefix="/api/stock-adjustments")


@stock_adjustments_bp.get("")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def list_stock_adjustments_route():
    """Query params: product_id, adjustment_type, from_date, to_date, page, per_page"""
    try:
        page, per_page = pagination_args()
        from_date, to_date = date_range_args()
        result = adjustment_service.list_stock_adjustments(
            product_id=optional_int_arg("product_id"),
            adjustment_type=request.args.get("adjustment_type"),
            from_date=from_date,
            to_date=to_date,
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock adjustments")
        return jsonify({"error": "Internal server error"}), 500


@stock_adjustments_bp.post("")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def create_stock_adjustment_route():
    """
    Apply a manual stock correction.

    Body: adjustment_type (increase|decrease), reason, optional reason_code and
    notes, plus either product_id + quantity or an items list.
    """
    data = request.get_json(silent=True) or {}

    try:
        adjustment = adjustment_service.create_stock_adjustment(
            adjustment_type=data.get("adjustment_type"),
            reason=data.get("reason"),
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            items=data.get("items"),
            reason_code=data.get("reason_code"),
            notes=data.get("notes"),
            actor=g.actor,
        )
        return jsonify({"stock_adjustment": adjustment.to_dict()}), 201

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@stock_adjustments_bp.get("/<int:adjustment_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def get_stock_adjustment_route(adjustment_id: int):
    try:
        adjustment = adjustment_service.get_stock_adjustment(adjustment_id)
        return jsonify({"stock_adjustment": adjustment.to_dict()}), 200
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock adjustment")
        return jsonify({"error": "Internal server error"}), 500
