# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import customer_service, ledger_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import parse_amount, require_fields


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    Query parameters:
    - include_inactive: Include deactivated customers (default: false)
    - search: Match on name or phone number
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    customers = customer_service.list_customers(
        **current_scope(),
        include_inactive=include_inactive,
        search=request.args.get("search"),
    )
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Request body:
    {
        "name": "Acme Traders",
        "address": "...",          (optional)
        "phone_number": "...",     (optional)
        "opening_balance": 1500,   (optional, posted as the first ledger entry)
        "branch_id": 2             (optional, shop-wide users only)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), ["name"])
        opening = data.get("opening_balance")
        customer = customer_service.create_customer(
            shop_id=g.shop_id,
            branch_id=resolve_write_branch(
                shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
            ),
            name=data["name"],
            address=data.get("address"),
            phone_number=data.get("phone_number"),
            opening_balance=parse_amount(opening, "opening_balance", allow_negative=True) if opening not in (None, "") else None,
            created_by_user_id=g.current_user.id,
        )
        return jsonify({
            "customer": customer.to_dict(),
            "balance": str(ledger_service.get_current_balance(customer.id)),
        }), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer(customer_id, **current_scope())
    return jsonify({
        "customer": customer.to_dict(),
        "balance": str(ledger_service.get_current_balance(customer.id)),
    }), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
def deactivate_customer_route(customer_id: int):
    """Soft delete; the customer's ledger stays intact."""
    customer = customer_service.deactivate_customer(customer_id, **current_scope())
    return jsonify({"customer": customer.to_dict()}), 200
