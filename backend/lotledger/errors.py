"""
Domain errors for the lot ledger.

Every error aborts the enclosing unit of work. Only TransactionConflictError
is retryable; the rest are business or data problems surfaced to the caller
with enough detail (product, requested quantity, shortfall) to act on.
"""


class LedgerError(Exception):
    """Base class; carries a message, structured details and an HTTP status."""

    status_code = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class QuotationNotFoundError(LedgerError):
    status_code = 404

    def __init__(self, quotation_id):
        super().__init__(
            f"Quotation {quotation_id} not found",
            details={"quotation_id": quotation_id},
        )


class QuotationAlreadyFinalizedError(LedgerError):
    status_code = 409

    def __init__(self, quotation_id, status: str):
        super().__init__(
            f"Quotation {quotation_id} is already {status.lower()}",
            details={"quotation_id": quotation_id, "status": status},
        )


class QuotationEmptyError(LedgerError):
    status_code = 400

    def __init__(self, quotation_id):
        super().__init__(
            f"Quotation {quotation_id} has no lines",
            details={"quotation_id": quotation_id},
        )


class ProductNotFoundError(LedgerError):
    status_code = 422

    def __init__(self, product_id):
        super().__init__(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )


class LotNotFoundError(LedgerError):
    status_code = 404

    def __init__(self, lot_id):
        super().__init__(f"Lot {lot_id} not found", details={"lot_id": lot_id})


class InsufficientStockError(LedgerError):
    status_code = 409

    def __init__(
        self,
        product_id,
        requested: int,
        available: int,
        product_name: str | None = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, "
            f"available {available}, short {self.shortfall}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "available_quantity": available,
                "shortfall": self.shortfall,
            },
        )


class SaleNotFoundError(LedgerError):
    status_code = 404

    def __init__(self, sale_id):
        super().__init__(f"Sale {sale_id} not found", details={"sale_id": sale_id})


class PaymentMismatchError(LedgerError):
    status_code = 400


class CorruptRecordError(LedgerError):
    """A stored row violates the entity invariants; surfaced to an operator."""

    status_code = 422


class TransactionConflictError(LedgerError):
    """Concurrent modification detected at flush/commit; safe to retry from scratch."""

    status_code = 503
    retryable = True
