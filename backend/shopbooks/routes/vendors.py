# Overview: Flask API routes for vendor operations; parses input and returns JSON responses.

"""
Vendor Routes

Vendors, their payments, and the computed vendor ledger. All routes require
authentication and are scoped to the caller's shop.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import vendor_service, vendor_ledger_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import parse_date, require_fields


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")


@vendors_bp.get("")
@require_auth
def list_vendors_route():
    """
    Query parameters:
    - include_inactive: Include inactive vendors (default: false)
    - search: Search term for name
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    vendors = vendor_service.list_vendors(
        **current_scope(),
        include_inactive=include_inactive,
        search=request.args.get("search"),
    )
    return jsonify({"items": [v.to_dict() for v in vendors], "count": len(vendors)}), 200


@vendors_bp.post("")
@require_auth
def create_vendor_route():
    try:
        data = require_fields(request.get_json(silent=True), ["name"])
        vendor = vendor_service.create_vendor(
            shop_id=g.shop_id,
            branch_id=resolve_write_branch(
                shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
            ),
            name=data["name"],
            address=data.get("address"),
            phone_number=data.get("phone_number"),
        )
        return jsonify({"vendor": vendor.to_dict()}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create vendor")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.get("/ledger-summaries")
@require_auth
def vendor_ledger_summaries_route():
    items = vendor_ledger_service.get_vendor_ledger_summaries(**current_scope())
    return jsonify({"items": items, "count": len(items)}), 200


@vendors_bp.get("/<int:vendor_id>")
@require_auth
def get_vendor_route(vendor_id: int):
    vendor = vendor_service.get_vendor(vendor_id, **current_scope())
    return jsonify({"vendor": vendor.to_dict()}), 200


@vendors_bp.delete("/<int:vendor_id>")
@require_auth
def deactivate_vendor_route(vendor_id: int):
    vendor = vendor_service.deactivate_vendor(vendor_id, **current_scope())
    return jsonify({"vendor": vendor.to_dict()}), 200


@vendors_bp.get("/<int:vendor_id>/ledger")
@require_auth
def vendor_ledger_route(vendor_id: int):
    """
    Vendor ledger computed from received purchase orders and vendor payments.

    Query parameters:
    - start_date, end_date: inclusive YYYY-MM-DD bounds (optional)
    """
    ledger = vendor_ledger_service.get_vendor_ledger(
        vendor_id,
        **current_scope(),
        start_date=parse_date(request.args.get("start_date"), "start_date", required=False),
        end_date=parse_date(request.args.get("end_date"), "end_date", required=False),
    )
    return jsonify(ledger), 200


@vendors_bp.get("/<int:vendor_id>/payments")
@require_auth
def list_vendor_payments_route(vendor_id: int):
    payments = vendor_service.list_vendor_payments(vendor_id, **current_scope())
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200


@vendors_bp.post("/<int:vendor_id>/payments")
@require_auth
def add_vendor_payment_route(vendor_id: int):
    """Body: {"amount": 300, "payment_date": "2026-10-03", "payment_method": "Bank", "bank_name": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), ["amount", "payment_date", "payment_method"])
        payment = vendor_service.add_vendor_payment(
            vendor_id,
            **current_scope(),
            amount=data["amount"],
            payment_date=data["payment_date"],
            payment_method=data["payment_method"],
            bank_name=data.get("bank_name"),
            notes=data.get("notes"),
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"payment": payment.to_dict()}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add vendor payment")
        return jsonify({"error": "Internal server error"}), 500


@vendors_bp.delete("/payments/<int:payment_id>")
@require_auth
def delete_vendor_payment_route(payment_id: int):
    vendor_service.delete_vendor_payment(payment_id, shop_id=g.shop_id)
    return jsonify({"deleted": payment_id}), 200
