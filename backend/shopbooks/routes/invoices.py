# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

"""
Invoice API Routes

Every write returns the customer's balance after the ledger effect, so the
client never has to re-read the ledger to show it.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import invoice_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import parse_date, require_fields


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """
    Query parameters:
    - customer_id, start_date, end_date (optional filters)
    - limit (default 100, max 500), offset
    """
    limit = max(1, min(request.args.get("limit", 100, type=int), 500))
    offset = max(0, request.args.get("offset", 0, type=int))
    invoices, total = invoice_service.list_invoices(
        **current_scope(),
        customer_id=request.args.get("customer_id", type=int),
        start_date=parse_date(request.args.get("start_date"), "start_date", required=False),
        end_date=parse_date(request.args.get("end_date"), "end_date", required=False),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [i.to_dict() for i in invoices],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200


@invoices_bp.get("/generate-reference")
@require_auth
def generate_reference_route():
    return jsonify({"reference_number": invoice_service.generate_reference_number(shop_id=g.shop_id)}), 200


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """
    Request body:
    {
        "reference_number": "A-0007",
        "customer_id": 3,
        "invoice_date": "2026-10-01",
        "items": [{"item_name": "Cement", "quantity": 10, "rate": 50}],
        "discount_amount": 0, "labour_amount": 0,          (optional)
        "grand_total": 500,                                (optional, checked)
        "transport_company": "...", "bilti_number": "...", "notes": "..."
    }

    Returns:
        201: {"invoice": {...}, "balance": "500.00"}
    """
    try:
        data = require_fields(
            request.get_json(silent=True),
            ["reference_number", "customer_id", "invoice_date", "items"],
        )
        invoice, balance = invoice_service.create_invoice(
            shop_id=g.shop_id,
            branch_id=resolve_write_branch(
                shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
            ),
            customer_id=data["customer_id"],
            reference_number=data["reference_number"],
            invoice_date=data["invoice_date"],
            items=data["items"],
            discount_amount=data.get("discount_amount") or 0,
            labour_amount=data.get("labour_amount") or 0,
            subtotal=data.get("subtotal"),
            grand_total=data.get("grand_total"),
            transport_company=data.get("transport_company"),
            bilti_number=data.get("bilti_number"),
            notes=data.get("notes"),
            status=data.get("status") or "draft",
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"invoice": invoice.to_dict(include_items=True), "balance": str(balance)}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice(invoice_id, **current_scope())
    return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200


@invoices_bp.put("/<int:invoice_id>")
@require_auth
def update_invoice_route(invoice_id: int):
    """Partial update; "items" replaces all line items."""
    try:
        invoice, balance = invoice_service.update_invoice(
            invoice_id,
            **current_scope(),
            patch=request.get_json(silent=True) or {},
            updated_by_user_id=g.current_user.id,
        )
        return jsonify({"invoice": invoice.to_dict(include_items=True), "balance": str(balance)}), 200
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice_route(invoice_id: int):
    try:
        balance = invoice_service.delete_invoice(
            invoice_id,
            **current_scope(),
            deleted_by_user_id=g.current_user.id,
        )
        return jsonify({"deleted": invoice_id, "balance": str(balance)}), 200
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500
