# Overview: Current purchase cost derived from a product's remaining lots.

"""
A product's current cost is the unit cost of the next unit FIFO would sell:
the oldest lot that still has stock. With no stock left the cost is 0.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..errors import ProductNotFoundError
from ..records import LotRecord
from .fifo import eligible_lots

logger = logging.getLogger(__name__)


def current_cost_from_lots(product_id: int, lots: Iterable[LotRecord]) -> int:
    ordered = eligible_lots(product_id, lots)
    if not ordered:
        return 0
    return ordered[0].unit_cost_cents


def recalculate(product_id: int, *, uow) -> int:
    """
    Re-read the product's available lots and store the derived cost.

    Runs inside the caller's unit of work and does not commit.
    """
    product = uow.products.get(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)

    lots = uow.lots.list_available([product_id])
    new_cost = current_cost_from_lots(product_id, lots)
    if new_cost != product.current_cost_cents:
        logger.info(
            "Product %s cost %s -> %s", product_id, product.current_cost_cents, new_cost
        )
    uow.products.update_position(
        product_id,
        stock_on_hand=product.stock_on_hand,
        current_cost_cents=new_cost,
    )
    return new_cost
