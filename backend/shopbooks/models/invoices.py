from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from ..validation import to_money


class Invoice(db.Model):
    """
    Sales invoice raised against a customer.

    Every invoice has exactly one active ledger entry crediting grand_total
    to its customer. Edits and deletes compensate that entry instead of
    rewriting it.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "reference_number", name="uq_invoices_shop_reference"),
        db.Index("ix_invoices_shop_date", "shop_id", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    reference_number = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False)
    transport_company = db.Column(db.String(255), nullable=True)
    bilti_number = db.Column(db.String(64), nullable=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    labour_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="draft")
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "reference_number": self.reference_number,
            "invoice_date": to_iso_date(self.invoice_date),
            "transport_company": self.transport_company,
            "bilti_number": self.bilti_number,
            "subtotal": str(to_money(self.subtotal)),
            "discount_amount": str(to_money(self.discount_amount)),
            "labour_amount": str(to_money(self.labour_amount)),
            "grand_total": str(to_money(self.grand_total)),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Numeric(15, 2), nullable=False)
    rate = db.Column(db.Numeric(15, 2), nullable=False)
    total = db.Column(db.Numeric(15, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "description": self.description,
            "quantity": str(to_money(self.quantity)),
            "rate": str(to_money(self.rate)),
            "total": str(to_money(self.total)),
        }
