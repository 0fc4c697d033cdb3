# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/stockcore/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services import compensation_service
from ..errors import InventoryError, error_response
from ..request_args import pagination_args, date_range_args, serialize_page
from ..actor import ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER
from ..decorators import require_role


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def list_sales_route():
    """
    List sales, newest first.

    Query params: from_date, to_date, payment_status, payment_method, page, per_page
    """
    try:
        page, per_page = pagination_args()
        from_date, to_date = date_range_args()
        result = sales_service.list_sales(
            from_date=from_date,
            to_date=to_date,
            payment_status=request.args.get("payment_status"),
            payment_method=request.args.get("payment_method"),
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def create_sale_route():
    """
    Create a sale; stock is decremented in the same transaction.

    Available to: admin, manager, cashier
    Errors: 400 invalid input, 404 unknown/inactive product,
    409 insufficient stock, 503 transaction aborted (retry)
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.create_sale(
            customer=data.get("customer"),
            items=data.get("items"),
            tax_rate=data.get("tax_rate"),
            discount_cents=data.get("discount_cents"),
            paid_cents=data.get("paid_cents"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            sale_date=data.get("sale_date"),
            actor=g.actor,
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_sale_route(sale_id: int):
    """
    Update customer, notes, payment method or amount paid.

    Available to: admin, manager
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.update_sale(sale_id, data, actor=g.actor)
        return jsonify({"sale": sale.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def cancel_sale_route(sale_id: int):
    """
    Cancel a sale and restock its lines.

    Available to: admin, manager
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = compensation_service.cancel_sale(sale_id, actor=g.actor, reason=data.get("reason"))
        return jsonify({"sale": sale.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
