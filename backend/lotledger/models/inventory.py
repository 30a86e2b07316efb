from __future__ import annotations

from ..extensions import db
from ..records import LOT_STATUS_ACTIVE, MOVEMENT_TYPE_SALE
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data plus its aggregate stock position.

    stock_on_hand mirrors SUM(lots.quantity_remaining) over ACTIVE lots and is
    only changed together with the lots it summarizes (receipt, confirmation).
    current_cost_cents is derived: unit cost of the oldest lot that still has
    stock, 0 when nothing is left.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        db.CheckConstraint("stock_on_hand >= 0", name="stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    stock_on_hand = db.Column(db.Integer, nullable=False, default=0)
    current_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Default sale price proposed on quotation lines
    price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock_on_hand}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "stock_on_hand": self.stock_on_hand,
            "current_cost_cents": self.current_cost_cents,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Lot(db.Model):
    """
    A batch of stock received at one point in time at one unit cost.

    Lots are consumed oldest-first (received_at, then id) and are never
    deleted; an EXHAUSTED lot stays for history and audit.
    """
    __tablename__ = "lots"
    __table_args__ = (
        # FIFO selection: product's active lots ordered by receipt time
        db.Index("ix_lots_product_status_received", "product_id", "status", "received_at"),
        db.CheckConstraint("quantity_remaining >= 0", name="remaining_non_negative"),
        db.CheckConstraint("quantity_remaining <= quantity_received", name="remaining_le_received"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    lot_code = db.Column(db.String(64), nullable=True)
    supplier_ref = db.Column(db.String(128), nullable=True)

    quantity_received = db.Column(db.Integer, nullable=False)
    quantity_remaining = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=LOT_STATUS_ACTIVE, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("lots", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Lot id={self.id} product_id={self.product_id} "
            f"remaining={self.quantity_remaining}/{self.quantity_received} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_code": self.lot_code,
            "supplier_ref": self.supplier_ref,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "unit_cost_cents": self.unit_cost_cents,
            "received_at": to_utc_z(self.received_at),
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class LotMovement(db.Model):
    """
    Append-only audit row: quantity taken out of one lot.

    Sale movements reference the sale and sale line. Stock exits
    (INTERNAL_USE, WASTE) leave both empty and may carry a note.

    No updates, no deletes.
    """
    __tablename__ = "lot_movements"
    __table_args__ = (
        db.Index("ix_lot_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, default=MOVEMENT_TYPE_SALE)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    remaining_after = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    actor = db.Column(db.String(255), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_line_id": self.sale_line_id,
            "lot_id": self.lot_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "remaining_after": self.remaining_after,
            "occurred_at": to_utc_z(self.occurred_at),
            "actor": self.actor,
            "note": self.note,
        }
