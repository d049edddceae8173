# Overview: Service-layer operations for vendors and vendor payments.

"""
Vendor Service

MULTI-TENANT: Vendors are scoped to a shop. Vendor names are unique per
shop because purchase orders reference vendors by name.

Vendors are deactivated rather than deleted so their ledger stays readable.
"""

from __future__ import annotations

import logging

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Vendor, VendorPayment
from ..validation import clean_text, parse_amount, parse_date
from . import tenant_service
from .concurrency import atomic

logger = logging.getLogger(__name__)


def create_vendor(
    *,
    shop_id: int,
    branch_id: int | None = None,
    name: str,
    address: str | None = None,
    phone_number: str | None = None,
) -> Vendor:
    name = clean_text(name, "name", required=True, max_length=255)

    existing = db.session.query(Vendor).filter_by(shop_id=shop_id, name=name).first()
    if existing:
        raise ConflictError(f"Vendor '{name}' already exists")

    with atomic("create vendor"):
        vendor = Vendor(
            shop_id=shop_id,
            branch_id=branch_id,
            name=name,
            address=clean_text(address, "address", max_length=255),
            phone_number=clean_text(phone_number, "phone_number", max_length=32),
            is_active=True,
        )
        db.session.add(vendor)
        db.session.flush()

    logger.info("Vendor %s created", vendor.id)
    return vendor


def get_vendor(vendor_id: int, *, shop_id: int, branch_id: int | None = None) -> Vendor:
    return tenant_service.get_scoped(Vendor, vendor_id, shop_id=shop_id, branch_id=branch_id)


def list_vendors(
    *,
    shop_id: int,
    branch_id: int | None = None,
    include_inactive: bool = False,
    search: str | None = None,
) -> list[Vendor]:
    query = tenant_service.scope_query(db.session.query(Vendor), Vendor, shop_id=shop_id, branch_id=branch_id)
    if not include_inactive:
        query = query.filter(Vendor.is_active.is_(True))
    if search:
        query = query.filter(Vendor.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Vendor.name).all()


def deactivate_vendor(vendor_id: int, *, shop_id: int, branch_id: int | None = None) -> Vendor:
    with atomic("deactivate vendor"):
        vendor = get_vendor(vendor_id, shop_id=shop_id, branch_id=branch_id)
        vendor.is_active = False
    logger.info("Vendor %s deactivated", vendor_id)
    return vendor


# =============================================================================
# VENDOR PAYMENTS
# =============================================================================

def add_vendor_payment(
    vendor_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    amount,
    payment_date,
    payment_method: str,
    bank_name: str | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> VendorPayment:
    amount = parse_amount(amount, "amount", allow_zero=False)
    payment_date = parse_date(payment_date, "payment_date")
    payment_method = clean_text(payment_method, "payment_method", required=True, max_length=32)

    vendor = get_vendor(vendor_id, shop_id=shop_id, branch_id=branch_id)
    if not vendor.is_active:
        raise ValidationError(f"Vendor {vendor_id} is inactive")

    with atomic("add vendor payment"):
        payment = VendorPayment(
            vendor_id=vendor.id,
            shop_id=vendor.shop_id,
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method,
            bank_name=clean_text(bank_name, "bank_name", max_length=255),
            notes=clean_text(notes, "notes"),
            created_by_user_id=created_by_user_id,
        )
        db.session.add(payment)
        db.session.flush()

    logger.info("Vendor payment %s of %s recorded for vendor %s", payment.id, amount, vendor_id)
    return payment


def list_vendor_payments(vendor_id: int, *, shop_id: int, branch_id: int | None = None) -> list[VendorPayment]:
    vendor = get_vendor(vendor_id, shop_id=shop_id, branch_id=branch_id)
    return (
        db.session.query(VendorPayment)
        .filter(VendorPayment.vendor_id == vendor.id)
        .order_by(VendorPayment.payment_date.desc(), VendorPayment.id.desc())
        .all()
    )


def delete_vendor_payment(payment_id: int, *, shop_id: int) -> None:
    with atomic("delete vendor payment"):
        payment = tenant_service.get_scoped(VendorPayment, payment_id, shop_id=shop_id, label="Vendor payment")
        db.session.delete(payment)
    logger.info("Vendor payment %s deleted", payment_id)
