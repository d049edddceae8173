# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

"""
Customer Ledger API Routes

Reads are served straight from the append-only ledger. The only write here
is a manual adjustment; invoices and payments post their own entries.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ShopbooksError
from ..services import ledger_service, tenant_service
from ..models import Customer
from ..validation import parse_amount, parse_date, parse_int, require_fields


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def _date_range():
    return (
        parse_date(request.args.get("start_date"), "start_date", required=False),
        parse_date(request.args.get("end_date"), "end_date", required=False),
    )


@ledger_bp.get("/customers/<int:customer_id>")
@require_auth
def get_customer_ledger_route(customer_id: int):
    """
    Customer ledger, most recent entry first.

    Query parameters:
    - start_date, end_date: inclusive YYYY-MM-DD bounds (optional)
    """
    start_date, end_date = _date_range()
    ledger = ledger_service.get_customer_ledger(
        customer_id,
        **tenant_service.current_scope(),
        start_date=start_date,
        end_date=end_date,
    )
    return jsonify(ledger), 200


@ledger_bp.get("/customers/<int:customer_id>/balance")
@require_auth
def get_customer_balance_route(customer_id: int):
    return jsonify(ledger_service.get_customer_balance(customer_id, **tenant_service.current_scope())), 200


@ledger_bp.get("/customers/<int:customer_id>/verify")
@require_auth
def verify_customer_ledger_route(customer_id: int):
    """Replay the customer's entries and report the first snapshot that disagrees."""
    tenant_service.get_scoped(Customer, customer_id, **tenant_service.current_scope())
    return jsonify(ledger_service.verify_customer_ledger(customer_id)), 200


@ledger_bp.post("/adjustments")
@require_auth
def add_adjustment_route():
    """
    Manual ledger entry.

    Request body:
    {
        "customer_id": 12,
        "credit_amount": 0,      (exactly one of credit/debit > 0)
        "debit_amount": 250,
        "description": "Cash received at counter",
        "payment_method": "Cash",        (optional)
        "reference_number": "RCPT-44"    (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), ["customer_id"])
        entry, balance = ledger_service.record_adjustment(
            customer_id=parse_int(data["customer_id"], "customer_id"),
            **tenant_service.current_scope(),
            credit_amount=parse_amount(data.get("credit_amount") or 0, "credit_amount"),
            debit_amount=parse_amount(data.get("debit_amount") or 0, "debit_amount"),
            description=data.get("description"),
            payment_method=data.get("payment_method"),
            reference_number=data.get("reference_number"),
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"entry": entry.to_dict(), "balance": str(balance)}), 201
    except ShopbooksError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record ledger adjustment")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/customers-summary")
@require_auth
def customers_summary_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    summaries = ledger_service.get_customers_summary(
        **tenant_service.current_scope(),
        include_inactive=include_inactive,
    )
    return jsonify({"items": summaries, "count": len(summaries)}), 200


@ledger_bp.get("/statistics")
@require_auth
def statistics_route():
    return jsonify(ledger_service.get_ledger_statistics(**tenant_service.current_scope())), 200


@ledger_bp.get("/top-customers")
@require_auth
def top_customers_route():
    limit = request.args.get("limit", 10, type=int)
    limit = max(1, min(limit, current_app.config["LEDGER_TOP_CUSTOMERS_MAX"]))
    items = ledger_service.get_top_customers(**tenant_service.current_scope(), limit=limit)
    return jsonify({"items": items, "limit": limit}), 200
