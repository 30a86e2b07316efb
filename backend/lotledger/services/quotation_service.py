# Overview: Quotation lifecycle; confirmation turns a quotation into a FIFO-costed sale.

"""
Quotation Confirmation Protocol (authoritative)

One unit of work per attempt, reads strictly before writes:

  read   quotation -> lines -> products -> available lots
  plan   stock check per product, FIFO consumption per line, cost/profit
         snapshots, new product positions, payment records (pure)
  write  sale, sale lines, lot decrements, product stock/cost, lot movements,
         payments, quotation CONFIRMED + sale back-reference
  commit

Any error before commit rolls back every write of the attempt. Conflicts
(another transaction changed a row we read) re-run the whole attempt from
fresh reads a bounded number of times. A confirmed quotation fails fast at
the first read, so retried requests cannot consume stock twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..errors import (
    QuotationNotFoundError,
    QuotationAlreadyFinalizedError,
    QuotationEmptyError,
    ProductNotFoundError,
    InsufficientStockError,
    CorruptRecordError,
)
from ..extensions import db
from ..models import Quotation
from ..records import (
    LotRecord,
    PaymentPart,
    ProductRecord,
    QuotationLineRecord,
    QuotationRecord,
    SaleSummary,
    MOVEMENT_TYPE_SALE,
    PAYMENT_METHOD_MIXED,
    PAYMENT_STATUS_COMPLETED,
    QUOTATION_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_TYPE_QUOTATION,
)
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_int, require_positive_int, require_amount_cents, optional_str
from . import fifo
from .concurrency import run_with_retry, default_uow_factory, DEFAULT_ATTEMPTS, DEFAULT_BACKOFF_BASE
from .cost_service import current_cost_from_lots
from .payment_service import (
    normalize_payment_method,
    normalize_payment_split,
    check_split_total,
    resolve_payments,
)

logger = logging.getLogger(__name__)


def _round_half_up_div(numerator: int, denominator: int) -> int:
    # nearest-cent rounding (half-up) for non-negative amounts
    return (numerator + (denominator // 2)) // denominator


@dataclass(frozen=True)
class PlannedLine:
    line: QuotationLineRecord
    movements: tuple[fifo.ConsumptionMovement, ...]

    @property
    def line_total_cents(self) -> int:
        return self.line.line_total_cents

    @property
    def cost_total_cents(self) -> int:
        return fifo.movements_cost_cents(self.movements)

    @property
    def unit_cost_cents(self) -> int:
        return _round_half_up_div(self.cost_total_cents, self.line.quantity)

    @property
    def profit_cents(self) -> int:
        return self.line_total_cents - self.cost_total_cents

    @property
    def unit_profit_cents(self) -> int:
        return self.line.unit_price_cents - self.unit_cost_cents


@dataclass(frozen=True)
class ProductPosition:
    product_id: int
    stock_on_hand: int
    current_cost_cents: int


@dataclass(frozen=True)
class ConfirmationPlan:
    quotation: QuotationRecord
    lines: tuple[PlannedLine, ...]
    lot_updates: tuple[LotRecord, ...]
    positions: tuple[ProductPosition, ...]
    payments: tuple[PaymentPart, ...]

    @property
    def total_cents(self) -> int:
        return sum(planned.line_total_cents for planned in self.lines)

    @property
    def cost_total_cents(self) -> int:
        return sum(planned.cost_total_cents for planned in self.lines)


def plan_confirmation(
    quotation: QuotationRecord,
    lines: list[QuotationLineRecord],
    products: dict[int, ProductRecord],
    lots: list[LotRecord],
) -> ConfirmationPlan:
    """
    Decide every write a confirmation will make, without writing anything.

    Raises the same business errors confirm_quotation surfaces.
    """
    if not lines:
        raise QuotationEmptyError(quotation.id)

    demand: dict[int, int] = {}
    for line in lines:
        if line.product_id not in products:
            raise ProductNotFoundError(line.product_id)
        demand[line.product_id] = demand.get(line.product_id, 0) + line.quantity

    # Aggregate stock gate: every product is checked before any lot is planned
    for product_id, quantity in demand.items():
        product = products[product_id]
        if quantity > product.stock_on_hand:
            raise InsufficientStockError(
                product_id,
                requested=quantity,
                available=product.stock_on_hand,
                product_name=product.name,
            )

    computed_total = sum(line.line_total_cents for line in lines)
    if computed_total != quotation.total_cents:
        raise CorruptRecordError(
            f"Quotation {quotation.id} total does not match its lines",
            details={
                "quotation_id": quotation.id,
                "total_cents": quotation.total_cents,
                "lines_total_cents": computed_total,
            },
        )

    working = list(lots)
    touched: set[int] = set()
    planned = []
    for line in lines:
        movements = fifo.consume(
            line.product_id,
            line.quantity,
            working,
            product_name=products[line.product_id].name,
        )
        working = fifo.apply_movements(working, movements)
        touched.update(m.lot_id for m in movements)
        planned.append(PlannedLine(line=line, movements=tuple(movements)))

    positions = tuple(
        ProductPosition(
            product_id=product_id,
            stock_on_hand=products[product_id].stock_on_hand - quantity,
            current_cost_cents=current_cost_from_lots(product_id, working),
        )
        for product_id, quantity in demand.items()
    )

    return ConfirmationPlan(
        quotation=quotation,
        lines=tuple(planned),
        lot_updates=tuple(lot for lot in working if lot.id in touched),
        positions=positions,
        payments=tuple(resolve_payments(quotation, computed_total)),
    )


def _apply_plan(uow, plan: ConfirmationPlan, actor: str | None, now) -> SaleSummary:
    quotation = plan.quotation

    sale_id = uow.sales.add(
        quotation_id=quotation.id,
        customer_id=quotation.customer_id,
        customer_name=quotation.customer_name,
        status=SALE_STATUS_COMPLETED,
        sale_type=SALE_TYPE_QUOTATION,
        total_cents=plan.total_cents,
        payment_method=quotation.payment_method,
        note=quotation.note or "Converted from quotation",
        created_by=actor,
        completed_at=now,
    )

    line_ids = []
    for planned in plan.lines:
        line_ids.append(
            uow.sales.add_line(
                sale_id=sale_id,
                product_id=planned.line.product_id,
                product_name=planned.line.product_name,
                quantity=planned.line.quantity,
                unit_price_cents=planned.line.unit_price_cents,
                line_total_cents=planned.line_total_cents,
                cost_total_cents=planned.cost_total_cents,
                unit_cost_cents=planned.unit_cost_cents,
                unit_profit_cents=planned.unit_profit_cents,
                profit_cents=planned.profit_cents,
            )
        )

    for lot in plan.lot_updates:
        uow.lots.update_remaining(lot.id, quantity_remaining=lot.quantity_remaining, status=lot.status)

    for position in plan.positions:
        uow.products.update_position(
            position.product_id,
            stock_on_hand=position.stock_on_hand,
            current_cost_cents=position.current_cost_cents,
        )

    movement_ids = []
    for planned, line_id in zip(plan.lines, line_ids):
        for movement in planned.movements:
            movement_ids.append(
                uow.movements.add(
                    sale_id=sale_id,
                    sale_line_id=line_id,
                    lot_id=movement.lot_id,
                    product_id=movement.product_id,
                    movement_type=MOVEMENT_TYPE_SALE,
                    quantity=movement.quantity,
                    unit_cost_cents=movement.unit_cost_cents,
                    remaining_after=movement.remaining_after,
                    occurred_at=now,
                    actor=actor,
                )
            )

    payment_ids = [
        uow.payments.add(
            sale_id=sale_id,
            method=part.method,
            amount_cents=part.amount_cents,
            customer_id=quotation.customer_id,
            status=PAYMENT_STATUS_COMPLETED,
            created_at=now,
        )
        for part in plan.payments
    ]

    uow.quotations.mark_confirmed(quotation.id, sale_id=sale_id, confirmed_at=now)

    return SaleSummary(
        sale_id=sale_id,
        quotation_id=quotation.id,
        total_cents=plan.total_cents,
        payment_method=quotation.payment_method,
        completed_at=now,
        line_ids=tuple(line_ids),
        movement_ids=tuple(movement_ids),
        payment_ids=tuple(payment_ids),
        cost_total_cents=plan.cost_total_cents,
        profit_cents=plan.total_cents - plan.cost_total_cents,
    )


def _read_open_quotation(uow, quotation_id: int) -> QuotationRecord:
    quotation = uow.quotations.get(quotation_id)
    if quotation is None:
        raise QuotationNotFoundError(quotation_id)
    if quotation.is_final:
        raise QuotationAlreadyFinalizedError(quotation_id, quotation.status)
    return quotation


def _confirm_in_uow(uow, quotation_id: int, actor: str | None) -> SaleSummary:
    quotation = _read_open_quotation(uow, quotation_id)

    lines = uow.quotations.list_lines(quotation_id)
    if not lines:
        raise QuotationEmptyError(quotation_id)

    products = uow.products.get_many(line.product_id for line in lines)
    for line in lines:
        if line.product_id not in products:
            raise ProductNotFoundError(line.product_id)

    lots = uow.lots.list_available(products.keys())

    plan = plan_confirmation(quotation, lines, products, lots)

    summary = _apply_plan(uow, plan, actor, utcnow())
    uow.commit()
    return summary


def confirm_quotation(
    quotation_id: int,
    *,
    actor: str | None = None,
    uow_factory=None,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
) -> SaleSummary:
    """
    Confirm a PENDING quotation into a COMPLETED sale.

    Consumes lots FIFO, decrements product stock, refreshes product cost,
    and records sale lines, lot movements and payments, all in one unit of
    work. Raises QuotationNotFoundError, QuotationAlreadyFinalizedError,
    QuotationEmptyError, ProductNotFoundError, InsufficientStockError,
    PaymentMismatchError, CorruptRecordError, or TransactionConflictError
    once retries are exhausted.
    """
    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            return _confirm_in_uow(uow, quotation_id, actor)

    summary = run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    logger.info(
        "Quotation %s confirmed as sale %s (total=%s, lots touched=%d)",
        quotation_id, summary.sale_id, summary.total_cents, len(summary.movement_ids),
    )
    return summary


def _parse_lines(raw_lines) -> list[dict]:
    if not isinstance(raw_lines, (list, tuple)) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")
    parsed = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        price = raw.get("unit_price_cents")
        parsed.append({
            "product_id": coerce_int(raw.get("product_id"), f"lines[{index}].product_id"),
            "quantity": require_positive_int(raw.get("quantity"), f"lines[{index}].quantity"),
            "unit_price_cents": (
                require_amount_cents(price, f"lines[{index}].unit_price_cents") if price is not None else None
            ),
        })
    return parsed


def _price_lines(uow, parsed: list[dict]) -> list[tuple[ProductRecord, int, int]]:
    """Resolve products and prices for parsed lines; reads only."""
    products = uow.products.get_many(item["product_id"] for item in parsed)

    priced = []
    for item in parsed:
        product = products.get(item["product_id"])
        if product is None:
            raise ProductNotFoundError(item["product_id"])
        price = item["unit_price_cents"]
        if price is None:
            price = product.price_cents
        if price is None:
            raise ValidationError(f"Product {product.id} has no price")
        priced.append((product, item["quantity"], price))
    return priced


def _add_priced_lines(uow, quotation_id: int, priced) -> None:
    for product, quantity, price in priced:
        uow.quotations.add_line(
            quotation_id=quotation_id,
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price_cents=price,
        )


def _split_payload(parts) -> list[dict] | None:
    if not parts:
        return None
    return [{"method": p.method, "amount_cents": p.amount_cents} for p in parts]


def create_quotation(
    *,
    lines,
    customer_id: str | None = None,
    customer_name: str | None = None,
    payment_method: str = "CASH",
    payment_split=None,
    note: str | None = None,
    actor: str | None = None,
    uow_factory=None,
) -> QuotationRecord:
    """
    Create a PENDING quotation.

    Line prices default to the product's price_cents; product names are
    snapshotted. Stock is neither checked nor reserved.
    """
    parsed = _parse_lines(lines)
    customer_id = optional_str(customer_id, "customer_id", max_length=64)
    customer_name = optional_str(customer_name, "customer_name")
    note = optional_str(note, "note", max_length=2000)

    split_parts = normalize_payment_split(payment_split) if payment_split else []
    method = PAYMENT_METHOD_MIXED if split_parts else normalize_payment_method(payment_method)

    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            priced = _price_lines(uow, parsed)

            total = sum(quantity * price for _, quantity, price in priced)
            if split_parts:
                check_split_total(split_parts, total)

            quotation = uow.quotations.add(
                customer_id=customer_id,
                customer_name=customer_name,
                total_cents=total,
                payment_method=method,
                payment_split=_split_payload(split_parts),
                note=note,
                created_by=actor,
            )
            _add_priced_lines(uow, quotation.id, priced)
            uow.commit()
            return quotation

    quotation = run_with_retry(_op)
    logger.info("Quotation %s created (total=%s, lines=%d)", quotation.id, quotation.total_cents, len(parsed))
    return quotation


def update_quotation(
    quotation_id: int,
    *,
    lines=None,
    payment_method: str | None = None,
    payment_split=None,
    note: str | None = None,
    actor: str | None = None,
    uow_factory=None,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
) -> QuotationRecord:
    """
    Edit a PENDING quotation; it stays PENDING.

    Args:
        quotation_id: Quotation to edit
        lines: New lines, replacing all current lines (same shape as create)
        payment_method: Single payment method; clears any split
        payment_split: Mixed payment parts; sets the method to MIXED
        note: New note
        actor: Who is editing, for the log

    Arguments left as None keep their current value. The total is recomputed
    from the lines and a split (new or kept) must still add up to it.

    Raises:
        ValidationError: If nothing is given or an input is malformed
        QuotationNotFoundError: If the quotation does not exist
        QuotationAlreadyFinalizedError: If it is CONFIRMED or CANCELLED
        ProductNotFoundError: If a new line names an unknown product
        PaymentMismatchError: If the split does not match the total
        TransactionConflictError: If retries are exhausted
    """
    if lines is None and payment_method is None and not payment_split and note is None:
        raise ValidationError("Nothing to update")

    parsed = _parse_lines(lines) if lines is not None else None
    if note is not None:
        note = optional_str(note, "note", max_length=2000)

    if payment_split:
        new_parts = normalize_payment_split(payment_split)
        new_method = PAYMENT_METHOD_MIXED
    elif payment_method is not None:
        new_parts = []
        new_method = normalize_payment_method(payment_method)
    else:
        new_parts = new_method = None

    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            quotation = _read_open_quotation(uow, quotation_id)

            if parsed is not None:
                priced = _price_lines(uow, parsed)
                total = sum(quantity * price for _, quantity, price in priced)
            else:
                priced = None
                total = sum(line.line_total_cents for line in uow.quotations.list_lines(quotation_id))

            if new_method is None:
                method, parts = quotation.payment_method, list(quotation.payment_split)
            else:
                method, parts = new_method, new_parts
            if parts:
                check_split_total(parts, total)

            updated = replace(
                quotation,
                total_cents=total,
                payment_method=method,
                payment_split=tuple(parts),
                note=quotation.note if note is None else note,
            )

            if priced is not None:
                uow.quotations.delete_lines(quotation_id)
                _add_priced_lines(uow, quotation_id, priced)
            uow.quotations.update_terms(
                quotation_id,
                total_cents=updated.total_cents,
                payment_method=updated.payment_method,
                payment_split=_split_payload(parts),
                note=updated.note,
                updated_at=utcnow(),
            )
            uow.commit()
            return updated

    quotation = run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    logger.info(
        "Quotation %s updated by %s (total=%s, method=%s)",
        quotation_id, actor or "unknown", quotation.total_cents, quotation.payment_method,
    )
    return quotation


def cancel_quotation(
    quotation_id: int,
    *,
    actor: str | None = None,
    uow_factory=None,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
) -> QuotationRecord:
    """PENDING -> CANCELLED. Lots and stock are untouched; actor is stored as cancelled_by."""
    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            quotation = _read_open_quotation(uow, quotation_id)
            uow.quotations.mark_cancelled(quotation_id, cancelled_at=utcnow(), cancelled_by=actor)
            uow.commit()
            return quotation

    quotation = run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    logger.info("Quotation %s cancelled by %s", quotation_id, actor or "unknown")
    return replace(quotation, status=QUOTATION_STATUS_CANCELLED)


def get_quotation(quotation_id: int) -> dict:
    """Quotation with its lines, for display."""
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise QuotationNotFoundError(quotation_id)
    return {
        "quotation": quotation.to_dict(),
        "lines": [line.to_dict() for line in quotation.lines],
    }
