# Overview: Flask API routes for purchase orders; create, update, deliver and cancel.

# backend/stockcore/routes/purchases.py
"""Purchase API routes with role enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import purchase_service
from ..services import compensation_service
from ..errors import InventoryError, error_response
from ..validation import coerce_datetime
from ..request_args import pagination_args, date_range_args, optional_int_arg, serialize_page
from ..actor import ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY
from ..decorators import require_role


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def list_purchases_route():
    """
    List purchases, newest first.

    Query params: from_date, to_date, supplier_id, status, payment_status, page, per_page
    """
    try:
        page, per_page = pagination_args()
        from_date, to_date = date_range_args()
        result = purchase_service.list_purchases(
            from_date=from_date,
            to_date=to_date,
            supplier_id=optional_int_arg("supplier_id"),
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            page=page,
            per_page=per_page,
        )
        return serialize_page(result)
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_purchase_route():
    """
    Create a pending purchase. No stock moves until delivery.

    Available to: admin, manager
    """
    data = request.get_json(silent=True) or {}

    try:
        purchase = purchase_service.create_purchase(
            supplier_id=data.get("supplier_id"),
            items=data.get("items"),
            tax_rate=data.get("tax_rate"),
            discount_cents=data.get("discount_cents"),
            shipping_cents=data.get("shipping_cents"),
            paid_cents=data.get("paid_cents"),
            payment_method=data.get("payment_method"),
            purchase_date=data.get("purchase_date"),
            expected_delivery_date=data.get("expected_delivery_date"),
            notes=data.get("notes"),
            actor=g.actor,
        )
        return jsonify({"purchase": purchase.to_dict()}), 201

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def get_purchase_route(purchase_id: int):
    try:
        return jsonify({"purchase": purchase_service.get_purchase(purchase_id).to_dict()}), 200
    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.patch("/<int:purchase_id>")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_purchase_route(purchase_id: int):
    """
    Update a purchase; {"status": "delivered"} receives the stock.

    Available to: admin, manager
    """
    data = request.get_json(silent=True) or {}

    try:
        purchase = purchase_service.update_purchase(purchase_id, data, actor=g.actor)
        return jsonify({"purchase": purchase.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/deliver")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def deliver_purchase_route(purchase_id: int):
    """
    Receive a pending/processing purchase into stock.

    A repeated request fails with 409 and does not receive stock twice.
    """
    data = request.get_json(silent=True) or {}

    try:
        delivered_at = coerce_datetime(data.get("delivered_at"), "delivered_at")
        purchase = compensation_service.deliver_purchase(purchase_id, actor=g.actor, delivered_at=delivered_at)
        return jsonify({"purchase": purchase.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deliver purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def cancel_purchase_route(purchase_id: int):
    """Cancel a pending purchase; delivered purchases answer 409."""
    try:
        purchase = compensation_service.cancel_purchase(purchase_id, actor=g.actor)
        return jsonify({"purchase": purchase.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500
