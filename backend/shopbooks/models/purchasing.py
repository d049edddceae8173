from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from ..validation import to_money


class Vendor(db.Model):
    """
    Supplier master data.

    MULTI-TENANT: Vendor names are unique within a shop. Purchase orders
    reference vendors by name, so the name is the join key for the vendor
    ledger.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "name", name="uq_vendors_shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "address": self.address,
            "phone_number": self.phone_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order header.

    STATUS: pending -> received | cancelled. Stock of the referenced items
    only includes the order while it is received.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_shop_vendor", "shop_id", "vendor_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    vendor_name = db.Column(db.String(255), nullable=False)
    order_date = db.Column(db.Date, nullable=False)
    expected_delivery = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "vendor_name": self.vendor_name,
            "order_date": to_iso_date(self.order_date),
            "expected_delivery": to_iso_date(self.expected_delivery),
            "notes": self.notes,
            "subtotal": str(to_money(self.subtotal)),
            "grand_total": str(to_money(self.grand_total)),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(db.Numeric(15, 2), nullable=False)
    total_price = db.Column(db.Numeric(15, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "purchase_price": str(to_money(self.purchase_price)),
            "total_price": str(to_money(self.total_price)),
        }


class VendorPayment(db.Model):
    """Payment made to a vendor; a debit row in the vendor ledger."""
    __tablename__ = "vendor_payments"
    __table_args__ = (
        db.Index("ix_vendor_payments_vendor_date", "vendor_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(15, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    bank_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "shop_id": self.shop_id,
            "amount": str(to_money(self.amount)),
            "payment_date": to_iso_date(self.payment_date),
            "payment_method": self.payment_method,
            "bank_name": self.bank_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
