from __future__ import annotations

from ..extensions import db
from ..records import SALE_STATUS_COMPLETED, PAYMENT_STATUS_COMPLETED
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Finalized sale document.

    Created in one unit of work together with its lines, payments and lot
    movements; never edited afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_completed", "status", "completed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for direct sales; one sale per quotation
    quotation_id = db.Column(db.Integer, nullable=True, unique=True)

    customer_id = db.Column(db.String(64), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)
    sale_type = db.Column(db.String(32), nullable=False, default="QUOTATION")
    total_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    note = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(255), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "status": self.status,
            "sale_type": self.sale_type,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "note": self.note,
            "created_by": self.created_by,
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Line item with price, FIFO cost and profit snapshots taken at sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    cost_total_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    unit_profit_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "cost_total_cents": self.cost_total_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_profit_cents": self.unit_profit_cents,
            "profit_cents": self.profit_cents,
        }


class Payment(db.Model):
    """
    Payment record for a sale.

    Split payments produce one row per tender; amounts sum to the sale total.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="Payment.id"))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "customer_id": self.customer_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
