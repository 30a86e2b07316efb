# Overview: FIFO lot consumption; pure computation over lot snapshots.

"""
FIFO Consumption Invariants (authoritative)

- Only lots with status ACTIVE and quantity_remaining > 0 are eligible.
- Eligible lots are consumed oldest first: received_at ascending, lot id
  ascending as the tie-break so equal timestamps still give one order.
- A lot is never touched while an older eligible lot still has stock.
- A lot whose remaining quantity reaches 0 becomes EXHAUSTED.
- Either the whole requested quantity is covered or InsufficientStockError
  is raised and nothing is returned; there is no partial plan.

The engine writes nothing. Callers apply the returned movements inside their
own unit of work together with everything else the operation writes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from ..errors import InsufficientStockError
from ..records import LotRecord, LOT_STATUS_ACTIVE, LOT_STATUS_EXHAUSTED
from ..validation import ValidationError


@dataclass(frozen=True)
class ConsumptionMovement:
    lot_id: int
    product_id: int
    quantity: int
    unit_cost_cents: int
    remaining_after: int

    @property
    def exhausted(self) -> bool:
        return self.remaining_after <= 0

    @property
    def cost_cents(self) -> int:
        return self.quantity * self.unit_cost_cents


def eligible_lots(product_id: int, lots: Iterable[LotRecord]) -> list[LotRecord]:
    """Lots of product_id that can be consumed, in FIFO order."""
    candidates = [lot for lot in lots if lot.product_id == product_id and lot.is_available]
    return sorted(candidates, key=lambda lot: lot.fifo_key)


def available_quantity(product_id: int, lots: Iterable[LotRecord]) -> int:
    return sum(lot.quantity_remaining for lot in eligible_lots(product_id, lots))


def consume(
    product_id: int,
    quantity_needed: int,
    lots: Iterable[LotRecord],
    *,
    product_name: str | None = None,
) -> list[ConsumptionMovement]:
    """
    Plan the consumption of quantity_needed units of product_id.

    Returns one ConsumptionMovement per lot touched, oldest lot first.
    Raises InsufficientStockError (with the shortfall) when the eligible lots
    cannot cover the request.
    """
    if isinstance(quantity_needed, bool) or not isinstance(quantity_needed, int):
        raise ValidationError("quantity_needed must be an integer")
    if quantity_needed <= 0:
        raise ValidationError("quantity_needed must be greater than zero")

    ordered = eligible_lots(product_id, lots)

    movements: list[ConsumptionMovement] = []
    outstanding = quantity_needed
    for lot in ordered:
        if outstanding <= 0:
            break
        take = min(lot.quantity_remaining, outstanding)
        movements.append(
            ConsumptionMovement(
                lot_id=lot.id,
                product_id=product_id,
                quantity=take,
                unit_cost_cents=lot.unit_cost_cents,
                remaining_after=lot.quantity_remaining - take,
            )
        )
        outstanding -= take

    if outstanding > 0:
        available = quantity_needed - outstanding
        raise InsufficientStockError(
            product_id,
            requested=quantity_needed,
            available=available,
            product_name=product_name,
        )

    return movements


def apply_movements(
    lots: Iterable[LotRecord], movements: Iterable[ConsumptionMovement]
) -> list[LotRecord]:
    """
    Return lot snapshots with the movements applied.

    Lots not mentioned by any movement are returned unchanged, in input order.
    """
    remaining_by_lot = {m.lot_id: m.remaining_after for m in movements}
    updated = []
    for lot in lots:
        if lot.id not in remaining_by_lot:
            updated.append(lot)
            continue
        remaining = remaining_by_lot[lot.id]
        updated.append(
            replace(
                lot,
                quantity_remaining=remaining,
                status=LOT_STATUS_EXHAUSTED if remaining <= 0 else LOT_STATUS_ACTIVE,
            )
        )
    return updated


def movements_cost_cents(movements: Iterable[ConsumptionMovement]) -> int:
    return sum(m.cost_cents for m in movements)
