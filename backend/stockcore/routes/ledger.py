# Overview: Flask API routes for the stock ledger; read-only.

from flask import Blueprint, request, jsonify, current_app

from ..services import ledger_service
from ..errors import InventoryError, error_response
from ..request_args import pagination_args, date_range_args, optional_int_arg, serialize_page
from ..decorators import require_role

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
@require_role()
def list_ledger_route():
    """
    Query params: product_id, cause, order_id, adjustment_id, from_date,
    to_date, page, per_page
    """
    try:
        page, per_page = pagination_args()
        from_date, to_date = date_range_args()
        result = ledger_service.list_ledger_entries(
            product_id=optional_int_arg("product_id"),
            cause=request.args.get("cause"),
            order_id=optional_int_arg("order_id"),
            adjustment_id=optional_int_arg("adjustment_id"),
            from_date=from_date,
            to_date=to_date,
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock ledger")
        return jsonify({"error": "Internal server error"}), 500
