# Overview: Flask API routes for stock items; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import inventory_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import parse_amount, require_fields


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
@require_auth
def list_items_route():
    items = inventory_service.list_items(**current_scope())
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.post("")
@require_auth
def create_item_route():
    data = require_fields(request.get_json(silent=True), ["name"])
    item = inventory_service.create_item(
        shop_id=g.shop_id,
        branch_id=resolve_write_branch(
            shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
        ),
        name=data["name"],
        cost_price=parse_amount(data.get("cost_price") or 0, "cost_price"),
        sale_price=parse_amount(data.get("sale_price") or 0, "sale_price"),
    )
    return jsonify({"item": item.to_dict()}), 201


@items_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    item = inventory_service.get_item(item_id, **current_scope())
    return jsonify({"item": item.to_dict()}), 200
