from __future__ import annotations

from ..extensions import db
from ..records import QUOTATION_STATUS_PENDING
from ..time_utils import to_utc_z


class Quotation(db.Model):
    """
    Pending sale proposal.

    PENDING -> CONFIRMED (becomes a Sale, consumes lots) or
    PENDING -> CANCELLED (no stock effect). Both targets are terminal.
    """
    __tablename__ = "quotations"
    __table_args__ = (
        db.Index("ix_quotations_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.String(64), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=QUOTATION_STATUS_PENDING, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    # Mixed payments: [{"method": "CASH", "amount_cents": 500}, ...]
    payment_split = db.Column(db.JSON, nullable=True)

    note = db.Column(db.Text, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    created_by = db.Column(db.String(255), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "status": self.status,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_split": self.payment_split,
            "note": self.note,
            "sale_id": self.sale_id,
            "created_by": self.created_by,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class QuotationLine(db.Model):
    __tablename__ = "quotation_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)

    # Name snapshot; the product may be renamed later
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    quotation = db.relationship("Quotation", backref=db.backref("lines", lazy=True, order_by="QuotationLine.id"))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
