"""
In-memory unit of work for service tests.

Mirrors the repository API of lotledger.repositories.SqlAlchemyUnitOfWork.
Each unit of work works on a private copy of the store; commit() checks the
version of every row it read against the store (optimistic concurrency) and
then merges its changes back. Nothing reaches the store without commit().
"""

from __future__ import annotations

import copy
from types import SimpleNamespace

from lotledger.errors import (
    TransactionConflictError,
    LotNotFoundError,
    ProductNotFoundError,
    QuotationNotFoundError,
)
from lotledger.records import (
    ProductRecord,
    LotRecord,
    QuotationRecord,
    QuotationLineRecord,
    LOT_STATUS_ACTIVE,
    LOT_STATUS_EXHAUSTED,
    QUOTATION_STATUS_PENDING,
    QUOTATION_STATUS_CONFIRMED,
    QUOTATION_STATUS_CANCELLED,
)

TABLES = (
    "products",
    "lots",
    "quotations",
    "quotation_lines",
    "sales",
    "sale_lines",
    "movements",
    "payments",
)


class InMemoryStore:
    def __init__(self):
        self.tables = {name: {} for name in TABLES}
        self._next_id = {name: 1 for name in TABLES}
        self.commits = 0
        # Number of upcoming commits that fail as if another writer won
        self.conflicts_to_raise = 0
        # Called with the store right before version checks on commit
        self.before_commit = None

    def next_id(self, table: str) -> int:
        value = self._next_id[table]
        self._next_id[table] += 1
        return value

    def insert(self, table: str, **fields) -> int:
        row_id = self.next_id(table)
        self.tables[table][row_id] = SimpleNamespace(id=row_id, version_id=1, **fields)
        return row_id

    def row(self, table: str, row_id: int):
        return self.tables[table][row_id]

    def rows(self, table: str) -> list:
        return [self.tables[table][key] for key in sorted(self.tables[table])]

    # Seeding helpers ------------------------------------------------------

    def add_product(self, name="Product", *, stock_on_hand=0, current_cost_cents=0, price_cents=None) -> int:
        return self.insert(
            "products",
            name=name,
            stock_on_hand=stock_on_hand,
            current_cost_cents=current_cost_cents,
            price_cents=price_cents,
        )

    def add_lot(self, product_id, quantity, unit_cost_cents, received_at, *, remaining=None, status=None) -> int:
        remaining = quantity if remaining is None else remaining
        if status is None:
            status = LOT_STATUS_ACTIVE if remaining > 0 else LOT_STATUS_EXHAUSTED
        return self.insert(
            "lots",
            product_id=product_id,
            quantity_received=quantity,
            quantity_remaining=remaining,
            unit_cost_cents=unit_cost_cents,
            received_at=received_at,
            status=status,
            lot_code=None,
        )

    def add_quotation(
        self,
        lines,
        *,
        payment_method="CASH",
        payment_split=None,
        status=QUOTATION_STATUS_PENDING,
        customer_id=None,
        total_cents=None,
    ) -> int:
        """lines: iterable of (product_id, quantity, unit_price_cents)."""
        lines = list(lines)
        computed = sum(qty * price for _, qty, price in lines)
        quotation_id = self.insert(
            "quotations",
            status=status,
            customer_id=customer_id,
            customer_name=None,
            total_cents=computed if total_cents is None else total_cents,
            payment_method=payment_method,
            payment_split=payment_split,
            note=None,
            sale_id=None,
        )
        for product_id, quantity, price in lines:
            self.insert(
                "quotation_lines",
                quotation_id=quotation_id,
                product_id=product_id,
                product_name=self.tables["products"].get(product_id, SimpleNamespace(name="?")).name,
                quantity=quantity,
                unit_price_cents=price,
            )
        return quotation_id

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)

    def snapshot(self) -> dict:
        """Comparable copy of every table, for all-or-nothing assertions."""
        return {
            name: {row_id: vars(row).copy() for row_id, row in table.items()}
            for name, table in self.tables.items()
        }


class _FakeRepository:
    table = ""

    def __init__(self, uow: "InMemoryUnitOfWork"):
        self._uow = uow

    @property
    def _rows(self) -> dict:
        return self._uow.working[self.table]

    def _read(self, row_id):
        row = self._rows.get(row_id)
        if row is not None:
            self._uow.note_read(self.table, row)
        return row

    def _write(self, row_id, missing_error):
        row = self._rows.get(row_id)
        if row is None:
            raise missing_error(row_id)
        self._uow.note_write(self.table, row)
        return row

    def _insert(self, **fields) -> SimpleNamespace:
        row_id = self._uow.store.next_id(self.table)
        row = SimpleNamespace(id=row_id, version_id=1, **fields)
        self._rows[row_id] = row
        self._uow.note_insert(self.table, row)
        return row


class FakeProductRepository(_FakeRepository):
    table = "products"

    def get(self, product_id):
        row = self._read(product_id)
        return ProductRecord.from_row(row) if row is not None else None

    def get_many(self, product_ids):
        result = {}
        for product_id in sorted(set(product_ids)):
            row = self._read(product_id)
            if row is not None:
                result[product_id] = ProductRecord.from_row(row)
        return result

    def list_all(self):
        return [ProductRecord.from_row(self._read(row_id)) for row_id in sorted(self._rows)]

    def update_position(self, product_id, *, stock_on_hand, current_cost_cents):
        row = self._write(product_id, ProductNotFoundError)
        row.stock_on_hand = stock_on_hand
        row.current_cost_cents = current_cost_cents


class FakeLotRepository(_FakeRepository):
    table = "lots"

    def get(self, lot_id):
        row = self._read(lot_id)
        return LotRecord.from_row(row) if row is not None else None

    def list_available(self, product_ids):
        ids = set(product_ids)
        rows = [
            row for row in self._rows.values()
            if row.product_id in ids and row.status == LOT_STATUS_ACTIVE and row.quantity_remaining > 0
        ]
        rows.sort(key=lambda row: (row.product_id, row.received_at, row.id))
        return [LotRecord.from_row(self._read(row.id)) for row in rows]

    def list_for_product(self, product_id, *, include_exhausted=False):
        rows = [
            row for row in self._rows.values()
            if row.product_id == product_id and (include_exhausted or row.status == LOT_STATUS_ACTIVE)
        ]
        rows.sort(key=lambda row: (row.received_at, row.id))
        return [LotRecord.from_row(self._read(row.id)) for row in rows]

    def add(self, *, product_id, quantity, unit_cost_cents, received_at, lot_code=None, supplier_ref=None):
        row = self._insert(
            product_id=product_id,
            quantity_received=quantity,
            quantity_remaining=quantity,
            unit_cost_cents=unit_cost_cents,
            received_at=received_at,
            status=LOT_STATUS_ACTIVE,
            lot_code=lot_code,
            supplier_ref=supplier_ref,
        )
        return LotRecord.from_row(row)

    def update_remaining(self, lot_id, *, quantity_remaining, status):
        row = self._write(lot_id, LotNotFoundError)
        row.quantity_remaining = quantity_remaining
        row.status = status


class FakeQuotationRepository(_FakeRepository):
    table = "quotations"

    def get(self, quotation_id):
        row = self._read(quotation_id)
        return QuotationRecord.from_row(row) if row is not None else None

    def list_lines(self, quotation_id):
        rows = self._uow.working["quotation_lines"]
        return [
            QuotationLineRecord.from_row(rows[row_id])
            for row_id in sorted(rows)
            if rows[row_id].quotation_id == quotation_id
        ]

    def add(self, *, customer_id, customer_name, total_cents, payment_method, payment_split, note, created_by):
        row = self._insert(
            status=QUOTATION_STATUS_PENDING,
            customer_id=customer_id,
            customer_name=customer_name,
            total_cents=total_cents,
            payment_method=payment_method,
            payment_split=payment_split,
            note=note,
            sale_id=None,
            created_by=created_by,
        )
        return QuotationRecord.from_row(row)

    def add_line(self, *, quotation_id, product_id, product_name, quantity, unit_price_cents):
        row_id = self._uow.store.next_id("quotation_lines")
        row = SimpleNamespace(
            id=row_id,
            version_id=1,
            quotation_id=quotation_id,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
        )
        self._uow.working["quotation_lines"][row_id] = row
        self._uow.note_insert("quotation_lines", row)
        return row_id

    def delete_lines(self, quotation_id):
        rows = self._uow.working["quotation_lines"]
        doomed = [row_id for row_id, row in rows.items() if row.quotation_id == quotation_id]
        for row_id in doomed:
            self._uow.note_delete("quotation_lines", rows.pop(row_id))
        return len(doomed)

    def update_terms(self, quotation_id, *, total_cents, payment_method, payment_split, note, updated_at):
        row = self._write(quotation_id, QuotationNotFoundError)
        row.total_cents = total_cents
        row.payment_method = payment_method
        row.payment_split = payment_split
        row.note = note
        row.updated_at = updated_at

    def mark_confirmed(self, quotation_id, *, sale_id, confirmed_at):
        row = self._write(quotation_id, QuotationNotFoundError)
        row.status = QUOTATION_STATUS_CONFIRMED
        row.sale_id = sale_id
        row.confirmed_at = confirmed_at

    def mark_cancelled(self, quotation_id, *, cancelled_at, cancelled_by=None):
        row = self._write(quotation_id, QuotationNotFoundError)
        row.status = QUOTATION_STATUS_CANCELLED
        row.cancelled_at = cancelled_at
        row.cancelled_by = cancelled_by


class FakeSaleRepository(_FakeRepository):
    table = "sales"

    def add(self, **fields):
        return self._insert(**fields).id

    def add_line(self, **fields):
        row_id = self._uow.store.next_id("sale_lines")
        row = SimpleNamespace(id=row_id, version_id=1, **fields)
        self._uow.working["sale_lines"][row_id] = row
        self._uow.note_insert("sale_lines", row)
        return row_id


class FakeMovementRepository(_FakeRepository):
    table = "movements"

    def add(self, **fields):
        return self._insert(**fields).id


class FakePaymentRepository(_FakeRepository):
    table = "payments"

    def add(self, **fields):
        return self._insert(**fields).id


class InMemoryUnitOfWork:
    def __init__(self, store: InMemoryStore):
        self.store = store
        self.working = copy.deepcopy(store.tables)
        self._read_versions: dict[tuple, int] = {}
        self._dirty: set[tuple] = set()
        self._inserted: set[tuple] = set()
        self._deleted: set[tuple] = set()
        self.committed = False
        self.rolled_back = False
        self.products = FakeProductRepository(self)
        self.lots = FakeLotRepository(self)
        self.quotations = FakeQuotationRepository(self)
        self.sales = FakeSaleRepository(self)
        self.movements = FakeMovementRepository(self)
        self.payments = FakePaymentRepository(self)

    def note_read(self, table, row):
        self._read_versions.setdefault((table, row.id), row.version_id)

    def note_write(self, table, row):
        self.note_read(table, row)
        self._dirty.add((table, row.id))

    def note_insert(self, table, row):
        self._inserted.add((table, row.id))

    def note_delete(self, table, row):
        if (table, row.id) in self._inserted:
            self._inserted.discard((table, row.id))
            return
        self.note_read(table, row)
        self._deleted.add((table, row.id))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None or not self.committed:
            self.rollback()

    def commit(self):
        if self.store.conflicts_to_raise > 0:
            self.store.conflicts_to_raise -= 1
            self.rollback()
            raise TransactionConflictError("Simulated concurrent modification")

        if self.store.before_commit is not None:
            hook, self.store.before_commit = self.store.before_commit, None
            hook(self.store)

        for (table, row_id), version in self._read_versions.items():
            current = self.store.tables[table].get(row_id)
            if current is None or current.version_id != version:
                self.rollback()
                raise TransactionConflictError(
                    "Concurrent modification detected; retry the operation",
                    details={"table": table, "id": row_id},
                )

        for table, row_id in self._inserted:
            self.store.tables[table][row_id] = self.working[table][row_id]
        for table, row_id in self._dirty:
            row = self.working[table][row_id]
            row.version_id += 1
            self.store.tables[table][row_id] = row
        for table, row_id in self._deleted:
            self.store.tables[table].pop(row_id, None)

        self.store.commits += 1
        self.committed = True

    def rollback(self):
        self.rolled_back = True
        self.working = copy.deepcopy(self.store.tables)
        self._read_versions.clear()
        self._dirty.clear()
        self._inserted.clear()
        self._deleted.clear()
