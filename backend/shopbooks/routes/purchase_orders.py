# Overview: Flask API routes for purchase order operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import purchase_order_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import require_fields


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders_route():
    """Query parameters: status, vendor_name (optional filters)."""
    orders = purchase_order_service.list_purchase_orders(
        **current_scope(),
        status=request.args.get("status"),
        vendor_name=request.args.get("vendor_name"),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@purchase_orders_bp.post("")
@require_auth
def create_purchase_order_route():
    """
    Request body:
    {
        "vendor_name": "Bestway Cement",
        "order_date": "2026-10-01",
        "expected_delivery": "2026-10-05",   (optional)
        "items": [{"item_id": 4, "item_name": "Cement", "quantity": 20, "purchase_price": 45}]
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), ["vendor_name", "order_date", "items"])
        order = purchase_order_service.create_purchase_order(
            shop_id=g.shop_id,
            branch_id=resolve_write_branch(
                shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
            ),
            vendor_name=data["vendor_name"],
            order_date=data["order_date"],
            items=data["items"],
            expected_delivery=data.get("expected_delivery"),
            notes=data.get("notes"),
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"purchase_order": order.to_dict(include_items=True)}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
def get_purchase_order_route(order_id: int):
    order = purchase_order_service.get_purchase_order(order_id, **current_scope())
    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200


@purchase_orders_bp.put("/<int:order_id>/status")
@require_auth
def update_purchase_order_status_route(order_id: int):
    """Body: {"status": "received"}  (pending | received | cancelled)"""
    try:
        data = require_fields(request.get_json(silent=True), ["status"])
        order = purchase_order_service.update_purchase_order_status(
            order_id,
            **current_scope(),
            status=data["status"],
        )
        return jsonify({"purchase_order": order.to_dict(include_items=True)}), 200
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update purchase order status")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.delete("/<int:order_id>")
@require_auth
def delete_purchase_order_route(order_id: int):
    try:
        purchase_order_service.delete_purchase_order(order_id, **current_scope())
        return jsonify({"deleted": order_id}), 200
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete purchase order")
        return jsonify({"error": "Internal server error"}), 500
