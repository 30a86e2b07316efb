# Overview: SQLAlchemy-backed repositories and the unit of work that scopes them.

"""
Unit of Work contract (shared by SqlAlchemyUnitOfWork and test doubles)

    uow.products    get / get_many / list_all / update_position
    uow.lots        list_available / list_for_product / get / add / update_remaining
    uow.quotations  get / list_lines / add / add_line / delete_lines / update_terms
                    mark_confirmed / mark_cancelled
    uow.sales       add / add_line
    uow.movements   add
    uow.payments    add
    uow.commit() / uow.rollback()

Reads return frozen *Record snapshots (see records.py), never ORM instances.
Writes take plain values. Nothing is visible to other sessions until commit().

Optimistic concurrency: every mapped table has a version_id column. An UPDATE
against a row that another transaction changed after we read it matches no
row, SQLAlchemy raises StaleDataError, and the unit of work turns that into
TransactionConflictError so callers can retry from fresh reads.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .errors import TransactionConflictError, LotNotFoundError, ProductNotFoundError, QuotationNotFoundError
from .extensions import db
from .models import (
    Product,
    Lot,
    LotMovement,
    Quotation,
    QuotationLine,
    Sale,
    SaleLine,
    Payment,
)
from .records import (
    ProductRecord,
    LotRecord,
    QuotationRecord,
    QuotationLineRecord,
    LOT_STATUS_ACTIVE,
    QUOTATION_STATUS_PENDING,
    QUOTATION_STATUS_CONFIRMED,
    QUOTATION_STATUS_CANCELLED,
)

_CONTENTION_MARKERS = ("locked", "deadlock", "could not serialize", "lock wait timeout")


def is_contention_error(exc: Exception) -> bool:
    """True for errors caused by another transaction holding or changing our rows."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if getattr(exc, "orig", None) is not None else exc).lower()
        return any(marker in message for marker in _CONTENTION_MARKERS)
    return False


def conflict_from(exc: Exception) -> TransactionConflictError:
    return TransactionConflictError(
        "Concurrent modification detected; retry the operation",
        details={"cause": exc.__class__.__name__},
    )


class _Repository:
    def __init__(self, uow: "SqlAlchemyUnitOfWork"):
        self._uow = uow
        self._session = uow.session

    def _flush(self) -> None:
        self._uow.flush()

    def _track(self, row):
        if row is not None:
            self._uow.track(row)
        return row

    def _load(self, model, entity_id, missing_error):
        row = self._uow.seen(model, entity_id) or self._session.get(model, entity_id)
        if row is None:
            raise missing_error(entity_id)
        return row


class ProductRepository(_Repository):
    def get(self, product_id: int) -> ProductRecord | None:
        row = self._track(self._session.get(Product, product_id))
        return ProductRecord.from_row(row) if row is not None else None

    def get_many(self, product_ids: Iterable[int]) -> dict[int, ProductRecord]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = self._session.query(Product).filter(Product.id.in_(ids)).all()
        return {row.id: ProductRecord.from_row(self._track(row)) for row in rows}

    def list_all(self) -> list[ProductRecord]:
        rows = self._session.query(Product).order_by(Product.id).all()
        return [ProductRecord.from_row(self._track(row)) for row in rows]

    def update_position(self, product_id: int, *, stock_on_hand: int, current_cost_cents: int) -> None:
        row = self._load(Product, product_id, ProductNotFoundError)
        row.stock_on_hand = stock_on_hand
        row.current_cost_cents = current_cost_cents


class LotRepository(_Repository):
    def get(self, lot_id: int) -> LotRecord | None:
        row = self._track(self._session.get(Lot, lot_id))
        return LotRecord.from_row(row) if row is not None else None

    def list_available(self, product_ids: Iterable[int]) -> list[LotRecord]:
        """ACTIVE lots with stock for the given products, FIFO ordered."""
        ids = sorted(set(product_ids))
        if not ids:
            return []
        rows = (
            self._session.query(Lot)
            .filter(
                Lot.product_id.in_(ids),
                Lot.status == LOT_STATUS_ACTIVE,
                Lot.quantity_remaining > 0,
            )
            .order_by(Lot.product_id, Lot.received_at, Lot.id)
            .all()
        )
        return [LotRecord.from_row(self._track(row)) for row in rows]

    def list_for_product(self, product_id: int, *, include_exhausted: bool = False) -> list[LotRecord]:
        q = self._session.query(Lot).filter(Lot.product_id == product_id)
        if not include_exhausted:
            q = q.filter(Lot.status == LOT_STATUS_ACTIVE)
        rows = q.order_by(Lot.received_at, Lot.id).all()
        return [LotRecord.from_row(self._track(row)) for row in rows]

    def add(
        self,
        *,
        product_id: int,
        quantity: int,
        unit_cost_cents: int,
        received_at,
        lot_code: str | None = None,
        supplier_ref: str | None = None,
    ) -> LotRecord:
        row = Lot(
            product_id=product_id,
            quantity_received=quantity,
            quantity_remaining=quantity,
            unit_cost_cents=unit_cost_cents,
            received_at=received_at,
            status=LOT_STATUS_ACTIVE,
            lot_code=lot_code,
            supplier_ref=supplier_ref,
        )
        self._session.add(row)
        self._flush()
        return LotRecord.from_row(self._track(row))

    def update_remaining(self, lot_id: int, *, quantity_remaining: int, status: str) -> None:
        row = self._load(Lot, lot_id, LotNotFoundError)
        row.quantity_remaining = quantity_remaining
        row.status = status


class QuotationRepository(_Repository):
    def get(self, quotation_id: int) -> QuotationRecord | None:
        row = self._track(self._session.get(Quotation, quotation_id))
        return QuotationRecord.from_row(row) if row is not None else None

    def list_lines(self, quotation_id: int) -> list[QuotationLineRecord]:
        rows = (
            self._session.query(QuotationLine)
            .filter_by(quotation_id=quotation_id)
            .order_by(QuotationLine.id)
            .all()
        )
        return [QuotationLineRecord.from_row(self._track(row)) for row in rows]

    def add(
        self,
        *,
        customer_id: str | None,
        customer_name: str | None,
        total_cents: int,
        payment_method: str,
        payment_split: list[dict] | None,
        note: str | None,
        created_by: str | None,
    ) -> QuotationRecord:
        row = Quotation(
            status=QUOTATION_STATUS_PENDING,
            customer_id=customer_id,
            customer_name=customer_name,
            total_cents=total_cents,
            payment_method=payment_method,
            payment_split=payment_split,
            note=note,
            created_by=created_by,
        )
        self._session.add(row)
        self._flush()
        return QuotationRecord.from_row(self._track(row))

    def add_line(
        self,
        *,
        quotation_id: int,
        product_id: int,
        product_name: str,
        quantity: int,
        unit_price_cents: int,
    ) -> int:
        row = QuotationLine(
            quotation_id=quotation_id,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            line_total_cents=quantity * unit_price_cents,
        )
        self._session.add(row)
        self._flush()
        return row.id

    def delete_lines(self, quotation_id: int) -> int:
        rows = (
            self._session.query(QuotationLine)
            .filter_by(quotation_id=quotation_id)
            .all()
        )
        for row in rows:
            self._session.delete(row)
        self._flush()
        return len(rows)

    def update_terms(
        self,
        quotation_id: int,
        *,
        total_cents: int,
        payment_method: str,
        payment_split: list[dict] | None,
        note: str | None,
        updated_at,
    ) -> None:
        row = self._load(Quotation, quotation_id, QuotationNotFoundError)
        row.total_cents = total_cents
        row.payment_method = payment_method
        row.payment_split = payment_split
        row.note = note
        # Always changes, so every edit bumps version_id
        row.updated_at = updated_at

    def mark_confirmed(self, quotation_id: int, *, sale_id: int, confirmed_at) -> None:
        row = self._load(Quotation, quotation_id, QuotationNotFoundError)
        row.status = QUOTATION_STATUS_CONFIRMED
        row.sale_id = sale_id
        row.confirmed_at = confirmed_at

    def mark_cancelled(self, quotation_id: int, *, cancelled_at, cancelled_by: str | None = None) -> None:
        row = self._load(Quotation, quotation_id, QuotationNotFoundError)
        row.status = QUOTATION_STATUS_CANCELLED
        row.cancelled_at = cancelled_at
        row.cancelled_by = cancelled_by


class SaleRepository(_Repository):
    def add(self, **fields) -> int:
        row = Sale(**fields)
        self._session.add(row)
        self._flush()
        return row.id

    def add_line(self, **fields) -> int:
        row = SaleLine(**fields)
        self._session.add(row)
        self._flush()
        return row.id


class MovementRepository(_Repository):
    def add(self, **fields) -> int:
        row = LotMovement(**fields)
        self._session.add(row)
        self._flush()
        return row.id


class PaymentRepository(_Repository):
    def add(self, **fields) -> int:
        row = Payment(**fields)
        self._session.add(row)
        self._flush()
        return row.id


class SqlAlchemyUnitOfWork:
    """
    One database transaction with its repositories.

    Use as a context manager; leaving the block without commit() rolls back.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session
        self._committed = False
        # Strong references to rows read in this unit of work; the session's
        # identity map is weak, and a reloaded row would carry a newer version_id.
        self._seen: dict[tuple, object] = {}
        self.products = ProductRepository(self)
        self.lots = LotRepository(self)
        self.quotations = QuotationRepository(self)
        self.sales = SaleRepository(self)
        self.movements = MovementRepository(self)
        self.payments = PaymentRepository(self)

    def track(self, row) -> None:
        self._seen[(type(row), row.id)] = row

    def seen(self, model, entity_id):
        return self._seen.get((model, entity_id))

    def __enter__(self) -> "SqlAlchemyUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None or not self._committed:
            self.rollback()

    def flush(self) -> None:
        try:
            self.session.flush()
        except (StaleDataError, OperationalError) as exc:
            if not is_contention_error(exc):
                raise
            self.session.rollback()
            raise conflict_from(exc) from exc

    def commit(self) -> None:
        try:
            self.session.commit()
        except (StaleDataError, OperationalError) as exc:
            if not is_contention_error(exc):
                self.session.rollback()
                raise
            self.session.rollback()
            raise conflict_from(exc) from exc
        self._committed = True
        self._seen.clear()

    def rollback(self) -> None:
        self._seen.clear()
        self.session.rollback()
