"""
Typed snapshots of persisted rows.

Repositories hand these to the services instead of ORM instances, so the
FIFO engine and the confirmation planner stay pure and can run against any
store. Each from_row() validates the entity invariants and raises
CorruptRecordError instead of guessing defaults for malformed data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .errors import CorruptRecordError
from .time_utils import to_utc_z


LOT_STATUS_ACTIVE = "ACTIVE"
LOT_STATUS_EXHAUSTED = "EXHAUSTED"
LOT_STATUSES = (LOT_STATUS_ACTIVE, LOT_STATUS_EXHAUSTED)

QUOTATION_STATUS_PENDING = "PENDING"
QUOTATION_STATUS_CONFIRMED = "CONFIRMED"
QUOTATION_STATUS_CANCELLED = "CANCELLED"
QUOTATION_TERMINAL_STATUSES = (QUOTATION_STATUS_CONFIRMED, QUOTATION_STATUS_CANCELLED)
QUOTATION_STATUSES = (QUOTATION_STATUS_PENDING,) + QUOTATION_TERMINAL_STATUSES

SALE_STATUS_COMPLETED = "COMPLETED"
SALE_TYPE_QUOTATION = "QUOTATION"

PAYMENT_STATUS_COMPLETED = "COMPLETED"

MOVEMENT_TYPE_SALE = "SALE"
MOVEMENT_TYPE_INTERNAL_USE = "INTERNAL_USE"
MOVEMENT_TYPE_WASTE = "WASTE"
# Non-sale stock exits; the reason is stored as the movement type
STOCK_EXIT_REASONS = (MOVEMENT_TYPE_INTERNAL_USE, MOVEMENT_TYPE_WASTE)

PAYMENT_METHOD_CASH = "CASH"
PAYMENT_METHOD_MIXED = "MIXED"
VALID_PAYMENT_METHODS = (
    PAYMENT_METHOD_CASH,
    "CARD",
    "CREDIT_CARD",
    "DEBIT_CARD",
    "YAPE",
    "PLIN",
    "TRANSFER",
    "DEPOSIT",
    "CHECK",
    "OTHER",
)


def _require(condition: bool, entity: str, entity_id, problem: str) -> None:
    if not condition:
        raise CorruptRecordError(
            f"{entity} {entity_id} is malformed: {problem}",
            details={"entity": entity, "id": entity_id, "problem": problem},
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class ProductRecord:
    id: int
    name: str
    stock_on_hand: int
    current_cost_cents: int
    price_cents: int | None = None

    @classmethod
    def from_row(cls, row) -> "ProductRecord":
        _require(_is_int(row.stock_on_hand), "Product", row.id, "stock_on_hand is not an integer")
        _require(row.stock_on_hand >= 0, "Product", row.id, "stock_on_hand is negative")
        _require(_is_int(row.current_cost_cents), "Product", row.id, "current_cost_cents is not an integer")
        _require(row.current_cost_cents >= 0, "Product", row.id, "current_cost_cents is negative")
        return cls(
            id=row.id,
            name=row.name,
            stock_on_hand=row.stock_on_hand,
            current_cost_cents=row.current_cost_cents,
            price_cents=row.price_cents,
        )


@dataclass(frozen=True)
class LotRecord:
    id: int
    product_id: int
    quantity_received: int
    quantity_remaining: int
    unit_cost_cents: int
    received_at: datetime
    status: str = LOT_STATUS_ACTIVE
    lot_code: str | None = None

    @property
    def is_available(self) -> bool:
        """Eligible for FIFO consumption."""
        return self.status == LOT_STATUS_ACTIVE and self.quantity_remaining > 0

    @property
    def fifo_key(self) -> tuple:
        return (self.received_at, self.id)

    @classmethod
    def from_row(cls, row) -> "LotRecord":
        _require(_is_int(row.quantity_received), "Lot", row.id, "quantity_received is not an integer")
        _require(_is_int(row.quantity_remaining), "Lot", row.id, "quantity_remaining is not an integer")
        _require(
            0 <= row.quantity_remaining <= row.quantity_received,
            "Lot", row.id, "quantity_remaining outside 0..quantity_received",
        )
        _require(_is_int(row.unit_cost_cents) and row.unit_cost_cents >= 0, "Lot", row.id, "invalid unit_cost_cents")
        _require(row.received_at is not None, "Lot", row.id, "missing received_at")
        _require(row.status in LOT_STATUSES, "Lot", row.id, f"unknown status {row.status!r}")
        _require(
            (row.status == LOT_STATUS_EXHAUSTED) == (row.quantity_remaining == 0),
            "Lot", row.id, "status does not match quantity_remaining",
        )
        return cls(
            id=row.id,
            product_id=row.product_id,
            quantity_received=row.quantity_received,
            quantity_remaining=row.quantity_remaining,
            unit_cost_cents=row.unit_cost_cents,
            received_at=row.received_at,
            status=row.status,
            lot_code=row.lot_code,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_code": self.lot_code,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "unit_cost_cents": self.unit_cost_cents,
            "received_at": to_utc_z(self.received_at),
            "status": self.status,
        }


@dataclass(frozen=True)
class PaymentPart:
    method: str
    amount_cents: int


@dataclass(frozen=True)
class QuotationRecord:
    id: int
    status: str
    total_cents: int
    payment_method: str
    customer_id: str | None = None
    customer_name: str | None = None
    payment_split: tuple[PaymentPart, ...] = ()
    note: str | None = None
    sale_id: int | None = None

    @property
    def is_final(self) -> bool:
        return self.status in QUOTATION_TERMINAL_STATUSES

    @classmethod
    def from_row(cls, row) -> "QuotationRecord":
        _require(row.status in QUOTATION_STATUSES, "Quotation", row.id, f"unknown status {row.status!r}")
        _require(_is_int(row.total_cents) and row.total_cents >= 0, "Quotation", row.id, "invalid total_cents")

        parts = []
        for raw in row.payment_split or []:
            _require(isinstance(raw, dict), "Quotation", row.id, "payment_split entry is not an object")
            amount = raw.get("amount_cents")
            _require(_is_int(amount) and amount >= 0, "Quotation", row.id, "payment_split amount is invalid")
            parts.append(PaymentPart(method=str(raw.get("method") or ""), amount_cents=amount))

        return cls(
            id=row.id,
            status=row.status,
            total_cents=row.total_cents,
            payment_method=row.payment_method,
            customer_id=row.customer_id,
            customer_name=row.customer_name,
            payment_split=tuple(parts),
            note=row.note,
            sale_id=row.sale_id,
        )


@dataclass(frozen=True)
class QuotationLineRecord:
    id: int
    quotation_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @classmethod
    def from_row(cls, row) -> "QuotationLineRecord":
        _require(_is_int(row.quantity) and row.quantity > 0, "QuotationLine", row.id, "quantity must be positive")
        _require(
            _is_int(row.unit_price_cents) and row.unit_price_cents >= 0,
            "QuotationLine", row.id, "invalid unit_price_cents",
        )
        return cls(
            id=row.id,
            quotation_id=row.quotation_id,
            product_id=row.product_id,
            product_name=row.product_name,
            quantity=row.quantity,
            unit_price_cents=row.unit_price_cents,
        )


@dataclass(frozen=True)
class SaleSummary:
    """What a confirmation returns to its caller."""
    sale_id: int
    quotation_id: int | None
    total_cents: int
    payment_method: str
    completed_at: datetime
    line_ids: tuple[int, ...] = ()
    movement_ids: tuple[int, ...] = ()
    payment_ids: tuple[int, ...] = ()
    cost_total_cents: int = 0
    profit_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "quotation_id": self.quotation_id,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "completed_at": to_utc_z(self.completed_at),
            "line_ids": list(self.line_ids),
            "movement_ids": list(self.movement_ids),
            "payment_ids": list(self.payment_ids),
            "cost_total_cents": self.cost_total_cents,
            "profit_cents": self.profit_cents,
        }


@dataclass(frozen=True)
class StockExitSummary:
    """What a stock withdrawal returns to its caller."""
    product_id: int
    reason: str
    quantity: int
    cost_total_cents: int
    stock_on_hand: int
    current_cost_cents: int
    occurred_at: datetime
    movement_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "reason": self.reason,
            "quantity": self.quantity,
            "cost_total_cents": self.cost_total_cents,
            "stock_on_hand": self.stock_on_hand,
            "current_cost_cents": self.current_cost_cents,
            "occurred_at": to_utc_z(self.occurred_at),
            "movement_ids": list(self.movement_ids),
        }
