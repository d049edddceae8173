# Overview: Flask API routes for payment operations; parses input and returns JSON responses.

"""
Payment API Routes

DESIGN:
- Cash and Bank payments clear immediately; Cheques start pending
- PUT /<id>/status moves a payment between pending, cleared and cancelled
- Ledger and bank effects follow the cleared state (see payment_service)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import payment_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import require_fields


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _payment_response(payment, balance, status_code):
    return jsonify({
        "payment": payment.to_dict(),
        "balance": str(balance) if balance is not None else None,
    }), status_code


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
@require_auth
def create_payment_route():
    """
    Request body:
    {
        "payment_method": "Cheque",     (Cash | Bank | Cheque)
        "amount": 200,
        "customer_id": 3,               (optional)
        "bank_id": 1,                   (optional, Bank/Cheque only)
        "payment_date": "2026-10-02",   (optional, defaults to today)
        "description": "...",
        "check_no": "000123", "check_date": "2026-10-09"
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), ["payment_method", "amount"])
        payment, balance = payment_service.create_payment(
            shop_id=g.shop_id,
            branch_id=resolve_write_branch(
                shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
            ),
            payment_method=data["payment_method"],
            amount=data["amount"],
            customer_id=data.get("customer_id"),
            bank_id=data.get("bank_id"),
            payment_date=data.get("payment_date"),
            description=data.get("description"),
            check_no=data.get("check_no"),
            check_date=data.get("check_date"),
            created_by_user_id=g.current_user.id,
        )
        return _payment_response(payment, balance, 201)
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/cash")
@require_auth
def create_cash_entry_route():
    """Cash received without a customer. Body: {"amount": 50, "description": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), ["amount"])
        payment = payment_service.create_cash_entry(
            shop_id=g.shop_id,
            branch_id=g.branch_id,
            amount=data["amount"],
            description=data.get("description"),
            payment_date=data.get("payment_date"),
            created_by_user_id=g.current_user.id,
        )
        return _payment_response(payment, None, 201)
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create cash entry")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("")
@require_auth
def list_payments_route():
    """
    Query parameters:
    - customer_id, status, payment_method (optional filters)
    - limit (default 100, max 500), offset
    """
    limit = max(1, min(request.args.get("limit", 100, type=int), 500))
    offset = max(0, request.args.get("offset", 0, type=int))
    payments, total = payment_service.list_payments(
        **current_scope(),
        customer_id=request.args.get("customer_id", type=int),
        status=request.args.get("status"),
        payment_method=request.args.get("payment_method"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [p.to_dict() for p in payments],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200


@payments_bp.get("/pending-checks")
@require_auth
def pending_checks_route():
    payments = payment_service.get_pending_cheques(**current_scope())
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200


@payments_bp.get("/customer/<int:customer_id>")
@require_auth
def customer_payments_route(customer_id: int):
    payments = payment_service.get_customer_payments(customer_id, **current_scope())
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200


@payments_bp.get("/<int:payment_id>")
@require_auth
def get_payment_route(payment_id: int):
    payment = payment_service.get_payment(payment_id, **current_scope())
    return jsonify({"payment": payment.to_dict()}), 200


# =============================================================================
# PAYMENT CHANGES
# =============================================================================

@payments_bp.put("/<int:payment_id>/status")
@require_auth
def update_payment_status_route(payment_id: int):
    """Body: {"status": "cleared"}  (pending | cleared | cancelled)"""
    try:
        data = require_fields(request.get_json(silent=True), ["status"])
        payment, balance = payment_service.update_payment_status(
            payment_id,
            **current_scope(),
            status=data["status"],
            updated_by_user_id=g.current_user.id,
        )
        return _payment_response(payment, balance, 200)
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.put("/<int:payment_id>")
@require_auth
def update_payment_route(payment_id: int):
    try:
        payment, balance = payment_service.update_payment(
            payment_id,
            **current_scope(),
            patch=request.get_json(silent=True) or {},
            updated_by_user_id=g.current_user.id,
        )
        return _payment_response(payment, balance, 200)
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("/<int:payment_id>")
@require_auth
def delete_payment_route(payment_id: int):
    try:
        balance = payment_service.delete_payment(
            payment_id,
            **current_scope(),
            deleted_by_user_id=g.current_user.id,
        )
        return jsonify({
            "deleted": payment_id,
            "balance": str(balance) if balance is not None else None,
        }), 200
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Internal server error"}), 500
