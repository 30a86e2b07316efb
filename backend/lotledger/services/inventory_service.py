# Overview: Inventory read models over lots and movements, plus bulk cost maintenance.

"""
Lot Inventory Invariants (authoritative)

- Product.stock_on_hand == SUM(quantity_remaining) over the product's ACTIVE lots.
- Product.current_cost_cents == unit cost of the oldest ACTIVE lot with stock,
  or 0 when no such lot exists.
- Lot movements are append-only; one row per (sale line, lot) consumed, or
  per lot touched by a stock exit.

Read functions here never write. recalculate_all_costs() is the repair tool
for the cost invariant; check_stock_consistency() reports stock drift and
leaves fixing it to an operator.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import ProductNotFoundError
from ..extensions import db
from ..models import Product, Lot, LotMovement
from ..records import LotRecord, LOT_STATUS_ACTIVE
from . import cost_service
from .concurrency import run_with_retry, default_uow_factory

logger = logging.getLogger(__name__)

MAX_MOVEMENTS_LIMIT = 500


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def list_lots(product_id: int, include_exhausted: bool = False) -> list[dict]:
    """Lots of a product, oldest first."""
    _get_product(product_id)

    q = Lot.query.filter_by(product_id=product_id)
    if not include_exhausted:
        q = q.filter(Lot.status == LOT_STATUS_ACTIVE)
    lots = q.order_by(Lot.received_at, Lot.id).all()
    return [lot.to_dict() for lot in lots]


def get_stock_summary(product_id: int) -> dict:
    product = _get_product(product_id)

    lots = [
        LotRecord.from_row(row)
        for row in Lot.query.filter(
            Lot.product_id == product_id,
            Lot.status == LOT_STATUS_ACTIVE,
            Lot.quantity_remaining > 0,
        ).all()
    ]

    lot_stock = sum(lot.quantity_remaining for lot in lots)
    value = sum(lot.quantity_remaining * lot.unit_cost_cents for lot in lots)
    # nearest-cent rounding (half-up)
    wac = (value + lot_stock // 2) // lot_stock if lot_stock else None

    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "stock_on_hand": product.stock_on_hand,
        "lot_stock": lot_stock,
        "active_lot_count": len(lots),
        "current_cost_cents": product.current_cost_cents,
        "fifo_cost_cents": cost_service.current_cost_from_lots(product_id, lots),
        "weighted_average_cost_cents": wac,
        "inventory_value_cents": value,
        "is_consistent": lot_stock == product.stock_on_hand,
    }


def check_stock_consistency() -> list[dict]:
    """
    Products whose stock_on_hand disagrees with their ACTIVE lots.

    Returns an empty list when the stock invariant holds everywhere.
    """
    lot_totals = dict(
        db.session.query(Lot.product_id, func.coalesce(func.sum(Lot.quantity_remaining), 0))
        .filter(Lot.status == LOT_STATUS_ACTIVE)
        .group_by(Lot.product_id)
        .all()
    )

    drift = []
    for product in Product.query.order_by(Product.id).all():
        lot_stock = int(lot_totals.get(product.id, 0))
        if lot_stock != product.stock_on_hand:
            drift.append({
                "product_id": product.id,
                "sku": product.sku,
                "stock_on_hand": product.stock_on_hand,
                "lot_stock": lot_stock,
                "difference": product.stock_on_hand - lot_stock,
            })

    if drift:
        logger.warning("Stock drift detected for %d product(s)", len(drift))
    return drift


def list_movements(
    product_id: int | None = None,
    sale_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[dict]:
    """Lot movements, newest first, optionally filtered by product, sale or type."""
    limit = max(1, min(limit, MAX_MOVEMENTS_LIMIT))

    q = LotMovement.query
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    if sale_id is not None:
        q = q.filter_by(sale_id=sale_id)
    if movement_type:
        q = q.filter_by(movement_type=movement_type.strip().upper())

    rows = q.order_by(LotMovement.occurred_at.desc(), LotMovement.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]


def recalculate_all_costs(*, uow_factory=None) -> dict[int, int]:
    """
    Re-derive current_cost_cents for every product from its lots.

    Returns {product_id: new_cost_cents}. Runs as one unit of work.
    """
    uow_factory = uow_factory or default_uow_factory

    def _op():
        with uow_factory() as uow:
            costs = {
                product.id: cost_service.recalculate(product.id, uow=uow)
                for product in uow.products.list_all()
            }
            uow.commit()
            return costs

    costs = run_with_retry(_op)
    logger.info("Recalculated cost for %d product(s)", len(costs))
    return costs
