from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import to_money


class Item(db.Model):
    """
    Stock item.

    qty_on_hand moves with purchase order receipts. Reverting a receipt that
    would take it below zero is refused.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "name", name="uq_items_shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    qty_on_hand = db.Column(db.Integer, nullable=False, default=0)
    cost_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "qty_on_hand": self.qty_on_hand,
            "cost_price": str(to_money(self.cost_price)),
            "sale_price": str(to_money(self.sale_price)),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
