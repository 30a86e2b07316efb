# Overview: Read access to finalized sales and their cost trail.

from __future__ import annotations

from ..errors import SaleNotFoundError
from ..extensions import db
from ..models import Sale, LotMovement


def get_sale_detail(sale_id: int) -> dict:
    """
    Sale with its lines, payments and the lot movements that fed it.

    Totals are summed from the stored line snapshots, not recomputed from
    current product costs.
    """
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(sale_id)

    lines = list(sale.lines)
    movements = (
        LotMovement.query.filter_by(sale_id=sale_id)
        .order_by(LotMovement.sale_line_id, LotMovement.id)
        .all()
    )

    cost_total = sum(line.cost_total_cents for line in lines)
    return {
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in lines],
        "payments": [payment.to_dict() for payment in sale.payments],
        "movements": [movement.to_dict() for movement in movements],
        "cost_total_cents": cost_total,
        "profit_cents": sale.total_cents - cost_total,
    }
