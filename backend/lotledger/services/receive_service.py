# Overview: Stock receipts; each receipt becomes a new FIFO lot.

"""
Lot Receiving

A receipt creates one ACTIVE lot with quantity_remaining == quantity_received,
adds the quantity to the product's stock_on_hand and refreshes the product's
current cost, all in one unit of work. A receipt never changes an existing
lot, so the cost only moves when the new lot is the oldest one with stock
(for example after the product ran out, or for a back-dated receipt).
"""

from __future__ import annotations

import logging

from ..errors import ProductNotFoundError
from ..records import LotRecord
from ..time_utils import CLOCK_SKEW_ALLOWANCE, normalize_datetime, utcnow
from ..validation import ValidationError, require_positive_int, require_amount_cents, optional_str
from .concurrency import run_with_retry, default_uow_factory, DEFAULT_ATTEMPTS, DEFAULT_BACKOFF_BASE
from .cost_service import current_cost_from_lots

logger = logging.getLogger(__name__)


def _parse_received_at(value):
    try:
        received_at = normalize_datetime(value)
    except ValueError:
        raise ValidationError("received_at must be an ISO-8601 datetime")
    if received_at > utcnow() + CLOCK_SKEW_ALLOWANCE:
        raise ValidationError("received_at cannot be in the future")
    return received_at


def receive_lot(
    product_id: int,
    quantity: int,
    unit_cost_cents: int,
    *,
    received_at=None,
    lot_code: str | None = None,
    supplier_ref: str | None = None,
    actor: str | None = None,
    uow_factory=None,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
) -> LotRecord:
    """
    Receive stock for a product as a new lot.

    Args:
        product_id: Product receiving the stock
        quantity: Units received (> 0)
        unit_cost_cents: Purchase cost per unit (>= 0)
        received_at: Receipt time (datetime or ISO-8601); defaults to now
        lot_code: Optional supplier batch code
        supplier_ref: Optional PO / invoice reference
        actor: Who is receiving, for the log

    Returns:
        The created LotRecord

    Raises:
        ValidationError: If an input is malformed
        ProductNotFoundError: If the product does not exist
        TransactionConflictError: If retries are exhausted
    """
    quantity = require_positive_int(quantity, "quantity")
    unit_cost_cents = require_amount_cents(unit_cost_cents, "unit_cost_cents")
    received_at = _parse_received_at(received_at)
    lot_code = optional_str(lot_code, "lot_code", max_length=64)
    supplier_ref = optional_str(supplier_ref, "supplier_ref", max_length=128)

    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            product = uow.products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            existing = uow.lots.list_available([product_id])

            lot = uow.lots.add(
                product_id=product_id,
                quantity=quantity,
                unit_cost_cents=unit_cost_cents,
                received_at=received_at,
                lot_code=lot_code,
                supplier_ref=supplier_ref,
            )
            uow.products.update_position(
                product_id,
                stock_on_hand=product.stock_on_hand + quantity,
                current_cost_cents=current_cost_from_lots(product_id, existing + [lot]),
            )
            uow.commit()
            return lot

    lot = run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    logger.info(
        "Received lot %s for product %s: %s units at %s cents (by %s)",
        lot.id, product_id, quantity, unit_cost_cents, actor or "unknown",
    )
    return lot
