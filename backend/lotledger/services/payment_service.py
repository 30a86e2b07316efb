# Overview: Payment method validation and split-payment resolution for sales.

"""
Payment Rules

- A quotation carries either a single payment method or a split: a list of
  (method, amount_cents) parts, in which case its method is MIXED.
- Split parts must use known methods, carry non-negative amounts, and sum to
  exactly the sale total. Zero-amount parts are accepted but produce no
  payment record.
- A sale gets one COMPLETED payment record per positive split part, or a
  single record for the full total.
"""

from __future__ import annotations

from typing import Iterable

from ..errors import PaymentMismatchError
from ..records import (
    PaymentPart,
    QuotationRecord,
    VALID_PAYMENT_METHODS,
    PAYMENT_METHOD_MIXED,
)
from ..validation import ValidationError, require_amount_cents


def normalize_payment_method(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("payment_method is required")
    method = value.strip().upper()
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method {value!r}. Must be one of: {', '.join(VALID_PAYMENT_METHODS)}"
        )
    return method


def normalize_payment_split(raw_parts) -> list[PaymentPart]:
    """Parse request-shaped split parts into PaymentPart values."""
    if not isinstance(raw_parts, (list, tuple)):
        raise ValidationError("payment_split must be a list")
    parts = []
    for index, raw in enumerate(raw_parts):
        if not isinstance(raw, dict):
            raise ValidationError(f"payment_split[{index}] must be an object")
        parts.append(
            PaymentPart(
                method=normalize_payment_method(raw.get("method")),
                amount_cents=require_amount_cents(raw.get("amount_cents"), f"payment_split[{index}].amount_cents"),
            )
        )
    return parts


def check_split_total(parts: Iterable[PaymentPart], total_cents: int) -> None:
    parts = list(parts)
    paid = sum(part.amount_cents for part in parts)
    if paid != total_cents:
        raise PaymentMismatchError(
            f"Split payment amounts sum to {paid} but the total is {total_cents}",
            details={
                "total_cents": total_cents,
                "paid_cents": paid,
                "difference_cents": total_cents - paid,
            },
        )


def resolve_payments(quotation: QuotationRecord, total_cents: int) -> list[PaymentPart]:
    """Payment records a confirmed sale of total_cents should carry."""
    if not quotation.payment_split:
        return [PaymentPart(method=quotation.payment_method, amount_cents=total_cents)]

    for part in quotation.payment_split:
        if part.method not in VALID_PAYMENT_METHODS:
            raise PaymentMismatchError(
                f"Unknown payment method {part.method!r} in split",
                details={"method": part.method},
            )
    check_split_total(quotation.payment_split, total_cents)

    positive = [part for part in quotation.payment_split if part.amount_cents > 0]
    if not positive:
        # Zero-total sale paid "by split": still record how it was settled
        return [PaymentPart(method=PAYMENT_METHOD_MIXED, amount_cents=0)]
    return positive
