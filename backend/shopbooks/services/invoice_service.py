# Overview: Service-layer operations for invoices; create/update/delete coordinators that keep the ledger in step.

"""
Invoice Coordinators

WHY: An invoice, its line items and its ledger credit are one fact. Either
all three are persisted or none of them are.

DESIGN:
- All input is validated before the first write.
- Each coordinator holds customer_lock for every customer whose balance it
  moves, row-locks those customers, and runs inside concurrency.atomic.
- update_invoice recomputes totals from the locked invoice row and its
  stored items, never from a copy read before the lock.
- Updates that change grand_total or the customer append a reversal of the
  invoice's active entry plus a fresh credit (ledger_service.revise_*).
- Deletes append a reversal; ledger history is never rewritten.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem
from ..validation import (
    clean_text,
    parse_amount,
    parse_date,
    parse_int,
    to_money,
)
from . import ledger_service, tenant_service
from .concurrency import atomic, customer_lock

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "A-"
REFERENCE_PATTERN = re.compile(r"^A-(\d+)$")

HEADER_TEXT_FIELDS = {
    "transport_company": 255,
    "bilti_number": 64,
    "notes": None,
}


# =============================================================================
# VALIDATION
# =============================================================================

def _clean_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        quantity = parse_amount(raw.get("quantity"), f"items[{idx}].quantity", allow_zero=False)
        rate = parse_amount(raw.get("rate"), f"items[{idx}].rate")
        cleaned.append({
            "item_id": parse_int(raw.get("item_id"), f"items[{idx}].item_id", required=False),
            "item_name": clean_text(raw.get("item_name"), f"items[{idx}].item_name", required=True, max_length=255),
            "description": clean_text(raw.get("description"), f"items[{idx}].description", max_length=255),
            "quantity": quantity,
            "rate": rate,
            "total": to_money(quantity * rate),
        })
    return cleaned


def _compute_totals(items: list[dict], discount_amount: Decimal, labour_amount: Decimal) -> tuple[Decimal, Decimal]:
    subtotal = sum((item["total"] for item in items), Decimal("0.00"))
    grand_total = subtotal - discount_amount + labour_amount
    if grand_total < 0:
        raise ValidationError("discount_amount cannot exceed subtotal plus labour_amount")
    return subtotal, grand_total


def _check_client_total(field: str, supplied, computed: Decimal) -> None:
    """Clients may echo totals; they must agree with the server-side computation."""
    if supplied is None:
        return
    if parse_amount(supplied, field) != computed:
        raise ValidationError(f"{field} {supplied} does not match computed {computed}")


def _ensure_reference_free(shop_id: int, reference_number: str, *, exclude_invoice_id: int | None = None) -> None:
    query = db.session.query(Invoice.id).filter(
        Invoice.shop_id == shop_id,
        Invoice.reference_number == reference_number,
    )
    if exclude_invoice_id is not None:
        query = query.filter(Invoice.id != exclude_invoice_id)
    if query.first():
        raise ConflictError(f"Invoice reference '{reference_number}' already exists")


def _flush_invoice(reference_number: str) -> None:
    """
    Flush pending invoice writes.

    A concurrent writer can take the reference between _ensure_reference_free
    and this flush; uq_invoices_shop_reference then reports it here.
    """
    try:
        db.session.flush()
    except IntegrityError as exc:
        message = str(exc.orig)
        if "reference_number" in message or "uq_invoices_shop_reference" in message:
            raise ConflictError(f"Invoice reference '{reference_number}' already exists") from exc
        raise


def _require_active_customer(customer_id: int, *, shop_id: int, branch_id: int | None) -> Customer:
    customer = tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)
    if not customer.is_active:
        raise ValidationError(f"Customer {customer_id} is inactive")
    return customer


def _add_invoice_item(invoice: Invoice, data: dict) -> InvoiceItem:
    item = InvoiceItem(
        item_id=data["item_id"],
        item_name=data["item_name"],
        description=data["description"],
        quantity=data["quantity"],
        rate=data["rate"],
        total=data["total"],
    )
    invoice.items.append(item)
    db.session.flush()
    return item


# =============================================================================
# COORDINATORS
# =============================================================================

def create_invoice(
    *,
    shop_id: int,
    branch_id: int | None = None,
    customer_id: int,
    reference_number: str,
    invoice_date,
    items: list[dict],
    discount_amount=0,
    labour_amount=0,
    subtotal=None,
    grand_total=None,
    transport_company: str | None = None,
    bilti_number: str | None = None,
    notes: str | None = None,
    status: str = "draft",
    created_by_user_id: int | None = None,
) -> tuple[Invoice, Decimal]:
    """
    Create an invoice with its items and its ledger credit.

    Returns (invoice, customer balance after the credit).
    """
    reference_number = clean_text(reference_number, "reference_number", required=True, max_length=64)
    invoice_date = parse_date(invoice_date, "invoice_date")
    customer_id = parse_int(customer_id, "customer_id")
    cleaned_items = _clean_items(items)
    discount = parse_amount(discount_amount or 0, "discount_amount")
    labour = parse_amount(labour_amount or 0, "labour_amount")
    computed_subtotal, computed_total = _compute_totals(cleaned_items, discount, labour)
    _check_client_total("subtotal", subtotal, computed_subtotal)
    _check_client_total("grand_total", grand_total, computed_total)

    _require_active_customer(customer_id, shop_id=shop_id, branch_id=branch_id)
    _ensure_reference_free(shop_id, reference_number)

    with customer_lock(customer_id), atomic("create invoice"):
        tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id, for_update=True)

        invoice = Invoice(
            shop_id=shop_id,
            branch_id=branch_id,
            customer_id=customer_id,
            reference_number=reference_number,
            invoice_date=invoice_date,
            transport_company=clean_text(transport_company, "transport_company", max_length=255),
            bilti_number=clean_text(bilti_number, "bilti_number", max_length=64),
            subtotal=computed_subtotal,
            discount_amount=discount,
            labour_amount=labour,
            grand_total=computed_total,
            status=clean_text(status, "status", max_length=16) or "draft",
            notes=clean_text(notes, "notes"),
            created_by_user_id=created_by_user_id,
        )
        db.session.add(invoice)
        _flush_invoice(reference_number)

        for data in cleaned_items:
            _add_invoice_item(invoice, data)

        entry = ledger_service.append_invoice_ledger_entry(invoice, created_by_user_id=created_by_user_id)
        balance = to_money(entry.remaining_balance)

    logger.info("Invoice %s (%s) created for customer %s", invoice.id, reference_number, customer_id)
    return invoice, balance


def update_invoice(
    invoice_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    patch: dict,
    updated_by_user_id: int | None = None,
) -> tuple[Invoice, Decimal]:
    """
    Apply a partial update to an invoice.

    Supplying `items` replaces every line item. Totals are always recomputed
    from the resulting items. When the grand total or the customer changes,
    the old credit is reversed and a new one is posted.

    Returns (invoice, current balance of the invoice's customer).
    """
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No fields to update")

    invoice = tenant_service.get_scoped(Invoice, invoice_id, shop_id=shop_id, branch_id=branch_id)
    old_customer_id = invoice.customer_id

    new_customer_id = old_customer_id
    if "customer_id" in patch:
        new_customer_id = parse_int(patch["customer_id"], "customer_id")
        if new_customer_id != old_customer_id:
            _require_active_customer(new_customer_id, shop_id=shop_id, branch_id=branch_id)

    patched_reference = None
    if "reference_number" in patch:
        patched_reference = clean_text(patch["reference_number"], "reference_number", required=True, max_length=64)
        _ensure_reference_free(shop_id, patched_reference, exclude_invoice_id=invoice.id)

    header = {}
    if "invoice_date" in patch:
        header["invoice_date"] = parse_date(patch["invoice_date"], "invoice_date")
    if "status" in patch:
        header["status"] = clean_text(patch["status"], "status", required=True, max_length=16)
    for field, max_length in HEADER_TEXT_FIELDS.items():
        if field in patch:
            header[field] = clean_text(patch[field], field, max_length=max_length)

    cleaned_items = _clean_items(patch["items"]) if "items" in patch else None
    patched_discount = parse_amount(patch["discount_amount"], "discount_amount") if "discount_amount" in patch else None
    patched_labour = parse_amount(patch["labour_amount"], "labour_amount") if "labour_amount" in patch else None

    with customer_lock(old_customer_id, new_customer_id), atomic("update invoice"):
        invoice = tenant_service.get_scoped(
            Invoice, invoice_id, shop_id=shop_id, branch_id=branch_id, for_update=True
        )
        if invoice.customer_id != old_customer_id:
            raise ConflictError("Invoice was modified concurrently; reload and retry")
        for customer_id in sorted({old_customer_id, new_customer_id}):
            ledger_service.lock_customer(customer_id)

        reference_number = patched_reference or invoice.reference_number

        # Totals come from the locked row and its committed items
        discount = patched_discount if patched_discount is not None else to_money(invoice.discount_amount)
        labour = patched_labour if patched_labour is not None else to_money(invoice.labour_amount)
        if cleaned_items is not None:
            basis = cleaned_items
        else:
            basis = [
                {"total": to_money(total)}
                for (total,) in db.session.query(InvoiceItem.total).filter(InvoiceItem.invoice_id == invoice.id)
            ]
        new_subtotal, new_total = _compute_totals(basis, discount, labour)
        _check_client_total("grand_total", patch.get("grand_total"), new_total)

        old_total = to_money(invoice.grand_total)

        for field, value in header.items():
            setattr(invoice, field, value)
        invoice.reference_number = reference_number
        invoice.customer_id = new_customer_id
        invoice.discount_amount = discount
        invoice.labour_amount = labour
        invoice.subtotal = new_subtotal
        invoice.grand_total = new_total
        _flush_invoice(reference_number)

        if cleaned_items is not None:
            for item in list(invoice.items):
                invoice.items.remove(item)
            db.session.flush()
            for data in cleaned_items:
                _add_invoice_item(invoice, data)

        db.session.flush()

        if new_total != old_total or new_customer_id != old_customer_id:
            ledger_service.revise_ledger_entry_for_invoice(
                invoice,
                new_credit_amount=new_total,
                new_description=f"Invoice updated - {reference_number}",
                created_by_user_id=updated_by_user_id,
            )
        balance = ledger_service.get_current_balance(new_customer_id)

    logger.info(
        "Invoice %s updated (total %s -> %s, customer %s -> %s)",
        invoice_id, old_total, new_total, old_customer_id, new_customer_id,
    )
    return invoice, balance


def delete_invoice(
    invoice_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    deleted_by_user_id: int | None = None,
) -> Decimal:
    """
    Delete an invoice and its items, reversing its ledger credit.

    Returns the customer's balance after the reversal.
    """
    invoice = tenant_service.get_scoped(Invoice, invoice_id, shop_id=shop_id, branch_id=branch_id)
    customer_id = invoice.customer_id

    with customer_lock(customer_id), atomic("delete invoice"):
        invoice = tenant_service.get_scoped(
            Invoice, invoice_id, shop_id=shop_id, branch_id=branch_id, for_update=True
        )
        if invoice.customer_id != customer_id:
            raise ConflictError("Invoice was modified concurrently; reload and retry")
        ledger_service.lock_customer(customer_id)

        reversal = ledger_service.remove_ledger_entry_for_invoice(
            invoice.id,
            description=f"Invoice deleted - {invoice.reference_number}",
            created_by_user_id=deleted_by_user_id,
        )
        db.session.delete(invoice)
        balance = to_money(reversal.remaining_balance)

    logger.info("Invoice %s deleted; customer %s balance now %s", invoice_id, customer_id, balance)
    return balance


# =============================================================================
# QUERIES
# =============================================================================

def get_invoice(invoice_id: int, *, shop_id: int, branch_id: int | None = None) -> Invoice:
    return tenant_service.get_scoped(Invoice, invoice_id, shop_id=shop_id, branch_id=branch_id)


def list_invoices(
    *,
    shop_id: int,
    branch_id: int | None = None,
    customer_id: int | None = None,
    start_date=None,
    end_date=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Invoice], int]:
    query = tenant_service.scope_query(db.session.query(Invoice), Invoice, shop_id=shop_id, branch_id=branch_id)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if start_date is not None:
        query = query.filter(Invoice.invoice_date >= start_date)
    if end_date is not None:
        query = query.filter(Invoice.invoice_date <= end_date)
    total = query.count()
    invoices = (
        query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return invoices, total


def generate_reference_number(*, shop_id: int) -> str:
    """Next free 'A-NNNN' reference for the shop, starting at A-0000."""
    references = (
        db.session.query(Invoice.reference_number)
        .filter(Invoice.shop_id == shop_id, Invoice.reference_number.like(f"{REFERENCE_PREFIX}%"))
        .all()
    )
    numbers = []
    for (reference,) in references:
        match = REFERENCE_PATTERN.match(reference)
        if match:
            numbers.append(int(match.group(1)))
    if not numbers:
        return f"{REFERENCE_PREFIX}0000"
    return f"{REFERENCE_PREFIX}{max(numbers) + 1:04d}"
