# Overview: Flask API routes for bank account operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import bank_service
from ..services.tenant_service import current_scope, resolve_write_branch
from ..validation import parse_amount, require_fields


banks_bp = Blueprint("banks", __name__, url_prefix="/api/banks")


@banks_bp.get("")
@require_auth
def list_banks_route():
    banks = bank_service.list_bank_accounts(**current_scope())
    return jsonify({"items": [b.to_dict() for b in banks], "count": len(banks)}), 200


@banks_bp.post("")
@require_auth
def create_bank_route():
    """Body: {"bank_code": "HBL-01", "account_title": "...", "initial_balance": 1000}"""
    try:
        data = require_fields(request.get_json(silent=True), ["bank_code"])
        initial = data.get("initial_balance")
        bank = bank_service.create_bank_account(
            shop_id=g.shop_id,
            branch_id=resolve_write_branch(
                shop_id=g.shop_id, branch_id=g.branch_id, requested_branch_id=data.get("branch_id")
            ),
            bank_code=data["bank_code"],
            account_title=data.get("account_title"),
            initial_balance=parse_amount(initial, "initial_balance", allow_negative=True) if initial not in (None, "") else None,
        )
        return jsonify({"bank": bank.to_dict()}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create bank account")
        return jsonify({"error": "Internal server error"}), 500


@banks_bp.get("/<int:bank_id>")
@require_auth
def get_bank_route(bank_id: int):
    scope = current_scope()
    bank = bank_service.get_bank_account(bank_id, **scope)
    limit = max(1, min(request.args.get("limit", 100, type=int), 500))
    transactions = bank_service.list_bank_transactions(bank_id, **scope, limit=limit)
    return jsonify({
        "bank": bank.to_dict(),
        "transactions": [t.to_dict() for t in transactions],
    }), 200


@banks_bp.post("/<int:bank_id>/transactions")
@require_auth
def create_bank_transaction_route(bank_id: int):
    """Manual movement. Body: {"type": "cash_in" | "cash_out", "amount": 100, "description": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), ["type", "amount"])
        txn = bank_service.create_bank_transaction(
            bank_id,
            **current_scope(),
            amount=parse_amount(data["amount"], "amount", allow_zero=False),
            type=data["type"],
            description=data.get("description"),
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record bank transaction")
        return jsonify({"error": "Internal server error"}), 500
