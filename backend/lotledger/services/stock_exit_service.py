# Overview: Non-sale stock exits (internal use, waste); consumes lots FIFO.

"""
Stock Exits

A stock exit takes units out of inventory without a sale: INTERNAL_USE for
stock consumed by the business itself, WASTE for spoiled or damaged goods.
It follows the sale path through the same FIFO engine, in one unit of work:

  read   product -> available lots
  plan   stock gate against stock_on_hand, FIFO consumption, new cost
  write  lot decrements, product stock/cost, one lot movement per lot
  commit

Exit movements carry the reason as movement_type and have no sale or sale
line. A shortfall raises InsufficientStockError and writes nothing.
"""

from __future__ import annotations

import logging

from ..errors import InsufficientStockError, ProductNotFoundError
from ..records import StockExitSummary, STOCK_EXIT_REASONS
from ..time_utils import utcnow
from ..validation import ValidationError, require_positive_int, optional_str
from . import fifo
from .concurrency import run_with_retry, default_uow_factory, DEFAULT_ATTEMPTS, DEFAULT_BACKOFF_BASE
from .cost_service import current_cost_from_lots

logger = logging.getLogger(__name__)


def normalize_reason(value) -> str:
    reason = str(value or "").strip().upper()
    if reason not in STOCK_EXIT_REASONS:
        raise ValidationError(f"reason must be one of {', '.join(STOCK_EXIT_REASONS)}")
    return reason


def withdraw_stock(
    product_id: int,
    quantity: int,
    reason: str,
    *,
    note: str | None = None,
    actor: str | None = None,
    uow_factory=None,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
) -> StockExitSummary:
    """
    Take stock out of a product's lots, oldest first, for a non-sale reason.

    Args:
        product_id: Product losing the stock
        quantity: Units withdrawn (> 0)
        reason: INTERNAL_USE or WASTE
        note: Optional free text stored on each movement
        actor: Who is withdrawing, stored on each movement

    Returns:
        StockExitSummary with the FIFO cost of the withdrawn units

    Raises:
        ValidationError: If an input is malformed
        ProductNotFoundError: If the product does not exist
        InsufficientStockError: If stock or lots cannot cover the quantity
        TransactionConflictError: If retries are exhausted
    """
    quantity = require_positive_int(quantity, "quantity")
    reason = normalize_reason(reason)
    note = optional_str(note, "note", max_length=255)

    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            product = uow.products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if quantity > product.stock_on_hand:
                raise InsufficientStockError(
                    product_id,
                    requested=quantity,
                    available=product.stock_on_hand,
                    product_name=product.name,
                )

            lots = uow.lots.list_available([product_id])
            movements = fifo.consume(product_id, quantity, lots, product_name=product.name)
            remaining = fifo.apply_movements(lots, movements)
            touched = {m.lot_id for m in movements}

            stock_on_hand = product.stock_on_hand - quantity
            current_cost = current_cost_from_lots(product_id, remaining)
            now = utcnow()

            for lot in remaining:
                if lot.id in touched:
                    uow.lots.update_remaining(lot.id, quantity_remaining=lot.quantity_remaining, status=lot.status)
            uow.products.update_position(
                product_id,
                stock_on_hand=stock_on_hand,
                current_cost_cents=current_cost,
            )
            movement_ids = [
                uow.movements.add(
                    sale_id=None,
                    sale_line_id=None,
                    lot_id=movement.lot_id,
                    product_id=product_id,
                    movement_type=reason,
                    quantity=movement.quantity,
                    unit_cost_cents=movement.unit_cost_cents,
                    remaining_after=movement.remaining_after,
                    occurred_at=now,
                    actor=actor,
                    note=note,
                )
                for movement in movements
            ]
            uow.commit()

            return StockExitSummary(
                product_id=product_id,
                reason=reason,
                quantity=quantity,
                cost_total_cents=fifo.movements_cost_cents(movements),
                stock_on_hand=stock_on_hand,
                current_cost_cents=current_cost,
                occurred_at=now,
                movement_ids=tuple(movement_ids),
            )

    summary = run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    logger.info(
        "Withdrew %s units of product %s as %s (cost=%s, by %s)",
        quantity, product_id, reason, summary.cost_total_cents, actor or "unknown",
    )
    return summary
