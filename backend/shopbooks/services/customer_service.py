# Overview: Service-layer operations for customers; creation with opening balance, lookup, deactivation.

from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..models import Customer
from ..validation import clean_text, to_money
from . import ledger_service, tenant_service
from .concurrency import atomic, customer_lock

logger = logging.getLogger(__name__)


def create_customer(
    *,
    shop_id: int,
    branch_id: int | None = None,
    name: str,
    address: str | None = None,
    phone_number: str | None = None,
    opening_balance: Decimal | None = None,
    created_by_user_id: int | None = None,
) -> Customer:
    """
    Create a customer.

    A non-zero opening balance is posted as the customer's first ledger
    entry (an adjustment) in the same transaction, so the balance resolver
    never has to special-case it.
    """
    name = clean_text(name, "name", required=True, max_length=255)
    opening = to_money(opening_balance or 0)

    with atomic("create customer"):
        customer = Customer(
            shop_id=shop_id,
            branch_id=branch_id,
            name=name,
            address=clean_text(address, "address", max_length=255),
            phone_number=clean_text(phone_number, "phone_number", max_length=32),
            opening_balance=opening,
            is_active=True,
        )
        db.session.add(customer)
        db.session.flush()

        if opening != 0:
            with customer_lock(customer.id):
                ledger_service.append_entry(
                    customer_id=customer.id,
                    transaction_type="adjustment",
                    credit_amount=opening if opening > 0 else 0,
                    debit_amount=-opening if opening < 0 else 0,
                    description="Opening balance",
                    reference_number=f"OB-{customer.id}",
                    created_by_user_id=created_by_user_id,
                )

    logger.info("Customer %s created (opening balance %s)", customer.id, opening)
    return customer


def get_customer(customer_id: int, *, shop_id: int, branch_id: int | None = None) -> Customer:
    return tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)


def list_customers(
    *,
    shop_id: int,
    branch_id: int | None = None,
    include_inactive: bool = False,
    search: str | None = None,
) -> list[Customer]:
    query = tenant_service.scope_query(db.session.query(Customer), Customer, shop_id=shop_id, branch_id=branch_id)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Customer.name.ilike(like), Customer.phone_number.ilike(like)))
    return query.order_by(Customer.name).all()


def deactivate_customer(customer_id: int, *, shop_id: int, branch_id: int | None = None) -> Customer:
    """
    Soft-delete a customer.

    Ledger entries are kept untouched; they remain readable through the
    ledger endpoints and still count toward shop statistics.
    """
    with atomic("deactivate customer"):
        customer = tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)
        customer.is_active = False
    logger.info("Customer %s deactivated", customer_id)
    return customer
