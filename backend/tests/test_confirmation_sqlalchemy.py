"""Confirmation and receipts against the real models (in-memory SQLite)."""

from sqlalchemy import text

import pytest

from lotledger.errors import InsufficientStockError, QuotationAlreadyFinalizedError, TransactionConflictError
from lotledger.extensions import db
from lotledger.models import Lot, LotMovement, Payment, Product, Quotation, QuotationLine, Sale, SaleLine
from lotledger.records import LOT_STATUS_EXHAUSTED, QUOTATION_STATUS_CONFIRMED
from lotledger.repositories import SqlAlchemyUnitOfWork
from lotledger.services import inventory_service, quotation_service, receive_service, sales_service, stock_exit_service


def test_end_to_end_confirmation(db_session, make_product, make_lot, make_quotation):
    product = make_product("P", stock_on_hand=5, current_cost_cents=800)
    lot = make_lot(product, 5, 800)
    quotation = make_quotation([(product, 5, 2000)])

    summary = quotation_service.confirm_quotation(quotation.id, actor="tester", backoff_base=0)

    db_session.expire_all()
    sale = db_session.get(Sale, summary.sale_id)
    assert sale.total_cents == 10000
    assert sale.quotation_id == quotation.id
    assert [(l.quantity, l.line_total_cents, l.cost_total_cents) for l in sale.lines] == [(5, 10000, 4000)]
    assert [(p.method, p.amount_cents) for p in sale.payments] == [("CASH", 10000)]

    assert db_session.get(Product, product.id).stock_on_hand == 0
    assert db_session.get(Product, product.id).current_cost_cents == 0
    stored_lot = db_session.get(Lot, lot.id)
    assert (stored_lot.quantity_remaining, stored_lot.status) == (0, LOT_STATUS_EXHAUSTED)

    movements = LotMovement.query.all()
    assert [(m.lot_id, m.quantity, m.unit_cost_cents) for m in movements] == [(lot.id, 5, 800)]

    stored_quotation = db_session.get(Quotation, quotation.id)
    assert stored_quotation.status == QUOTATION_STATUS_CONFIRMED
    assert stored_quotation.sale_id == sale.id
    assert stored_quotation.confirmed_at is not None


def test_fifo_and_cost_through_the_database(db_session, make_product, make_lot, make_quotation):
    product = make_product("Coffee", stock_on_hand=8, current_cost_cents=1000)
    older = make_lot(product, 3, 1000, days_ago=2)
    newer = make_lot(product, 5, 1200, days_ago=1)
    quotation = make_quotation([(product, 4, 2000)])

    quotation_service.confirm_quotation(quotation.id, backoff_base=0)

    db_session.expire_all()
    assert db_session.get(Lot, older.id).quantity_remaining == 0
    assert db_session.get(Lot, newer.id).quantity_remaining == 4
    assert db_session.get(Product, product.id).current_cost_cents == 1200
    assert inventory_service.get_stock_summary(product.id)["is_consistent"]


def test_failed_confirmation_persists_nothing(db_session, make_product, make_lot, make_quotation):
    first = make_product("First", stock_on_hand=5)
    short = make_product("Short", stock_on_hand=1)
    make_lot(first, 5, 500)
    make_lot(short, 1, 500)
    quotation = make_quotation([(first, 2, 1000), (short, 2, 1000)])

    with pytest.raises(InsufficientStockError):
        quotation_service.confirm_quotation(quotation.id, backoff_base=0)

    db_session.expire_all()
    assert Sale.query.count() == 0
    assert SaleLine.query.count() == 0
    assert Payment.query.count() == 0
    assert LotMovement.query.count() == 0
    assert db_session.get(Product, first.id).stock_on_hand == 5
    assert db_session.get(Quotation, quotation.id).status == "PENDING"


def test_second_confirmation_rejected(db_session, make_product, make_lot, make_quotation):
    product = make_product("P", stock_on_hand=5)
    make_lot(product, 5, 500)
    quotation = make_quotation([(product, 2, 1000)])

    quotation_service.confirm_quotation(quotation.id, backoff_base=0)
    with pytest.raises(QuotationAlreadyFinalizedError):
        quotation_service.confirm_quotation(quotation.id, backoff_base=0)

    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_on_hand == 3
    assert Sale.query.count() == 1


def test_sale_detail_read_model(db_session, make_product, make_lot, make_quotation):
    product = make_product("P", stock_on_hand=8)
    make_lot(product, 3, 1000, days_ago=2)
    make_lot(product, 5, 1200, days_ago=1)
    quotation = make_quotation(
        [(product, 4, 2000)],
        payment_method="MIXED",
        payment_split=[{"method": "CASH", "amount_cents": 5000}, {"method": "CARD", "amount_cents": 3000}],
    )
    summary = quotation_service.confirm_quotation(quotation.id, backoff_base=0)

    detail = sales_service.get_sale_detail(summary.sale_id)

    assert detail["sale"]["total_cents"] == 8000
    assert detail["cost_total_cents"] == 4200
    assert detail["profit_cents"] == 3800
    assert [p["amount_cents"] for p in detail["payments"]] == [5000, 3000]
    assert [m["quantity"] for m in detail["movements"]] == [3, 1]


def test_receipt_then_sale_keeps_stock_consistent(db_session, make_product):
    product = make_product("P")
    receive_service.receive_lot(product.id, 3, 1000, received_at="2026-01-01T00:00:00Z")
    receive_service.receive_lot(product.id, 5, 1200, received_at="2026-01-02T00:00:00Z")
    quotation = quotation_service.create_quotation(lines=[{"product_id": product.id, "quantity": 6}])

    quotation_service.confirm_quotation(quotation.id, backoff_base=0)

    summary = inventory_service.get_stock_summary(product.id)
    assert summary["stock_on_hand"] == 2
    assert summary["lot_stock"] == 2
    assert summary["current_cost_cents"] == 1200
    assert inventory_service.check_stock_consistency() == []


def test_stock_exit_through_the_database(db_session, make_product, make_lot):
    product = make_product("Coffee", stock_on_hand=8, current_cost_cents=1000)
    older = make_lot(product, 3, 1000, days_ago=2)
    newer = make_lot(product, 5, 1200, days_ago=1)

    summary = stock_exit_service.withdraw_stock(
        product.id, 4, "INTERNAL_USE", note="staff coffee", actor="barista", backoff_base=0
    )

    assert summary.cost_total_cents == 4200
    db_session.expire_all()
    assert db_session.get(Lot, older.id).status == LOT_STATUS_EXHAUSTED
    assert db_session.get(Lot, newer.id).quantity_remaining == 4
    assert db_session.get(Product, product.id).current_cost_cents == 1200
    assert inventory_service.get_stock_summary(product.id)["is_consistent"]

    movements = inventory_service.list_movements(movement_type="internal_use")
    assert sorted((m["lot_id"], m["quantity"]) for m in movements) == [(older.id, 3), (newer.id, 1)]
    assert {(m["sale_id"], m["actor"], m["note"]) for m in movements} == {(None, "barista", "staff coffee")}
    assert inventory_service.list_movements(movement_type="SALE") == []


def test_edited_quotation_confirms_with_new_lines(db_session, make_product, make_lot, make_quotation):
    product = make_product("P", stock_on_hand=5, price_cents=1500)
    make_lot(product, 5, 500)
    quotation = make_quotation([(product, 1, 1500)])
    version_before = quotation.version_id

    quotation_service.update_quotation(
        quotation.id, lines=[{"product_id": product.id, "quantity": 4}], note="bulk", backoff_base=0
    )

    db_session.expire_all()
    stored = db_session.get(Quotation, quotation.id)
    assert stored.version_id == version_before + 1
    assert stored.total_cents == 6000
    assert [(l.quantity, l.line_total_cents) for l in QuotationLine.query.all()] == [(4, 6000)]

    summary = quotation_service.confirm_quotation(quotation.id, backoff_base=0)
    assert summary.total_cents == 6000
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_on_hand == 1


def test_cancel_records_who_cancelled(db_session, make_product, make_quotation):
    product = make_product("P")
    quotation = make_quotation([(product, 1, 1000)])

    quotation_service.cancel_quotation(quotation.id, actor="manager-1", backoff_base=0)

    db_session.expire_all()
    stored = db_session.get(Quotation, quotation.id)
    assert stored.cancelled_by == "manager-1"
    assert stored.cancelled_at is not None


class TestUnitOfWorkConflicts:
    def test_row_changed_by_another_transaction_becomes_conflict(self, db_session, make_product):
        product = make_product("P", stock_on_hand=5)

        with pytest.raises(TransactionConflictError):
            with SqlAlchemyUnitOfWork() as uow:
                record = uow.products.get(product.id)
                with db.engine.begin() as conn:
                    conn.execute(
                        text("UPDATE products SET stock_on_hand = 1, version_id = version_id + 1 WHERE id = :id"),
                        {"id": product.id},
                    )
                uow.products.update_position(
                    product.id,
                    stock_on_hand=record.stock_on_hand - 1,
                    current_cost_cents=0,
                )
                uow.commit()

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_on_hand == 1

    def test_quotation_edited_by_another_transaction_becomes_conflict(self, db_session, make_product, make_quotation):
        product = make_product("P", stock_on_hand=5)
        quotation = make_quotation([(product, 1, 1000)])

        with pytest.raises(TransactionConflictError):
            with SqlAlchemyUnitOfWork() as uow:
                uow.quotations.get(quotation.id)
                with db.engine.begin() as conn:
                    conn.execute(
                        text("UPDATE quotations SET note = :note, version_id = version_id + 1 WHERE id = :id"),
                        {"note": "edited elsewhere", "id": quotation.id},
                    )
                uow.quotations.mark_cancelled(quotation.id, cancelled_at=None)
                uow.commit()

        db_session.expire_all()
        assert db_session.get(Quotation, quotation.id).status == "PENDING"

    def test_leaving_without_commit_rolls_back(self, db_session, make_product):
        product = make_product("P", stock_on_hand=5)

        with SqlAlchemyUnitOfWork() as uow:
            uow.products.update_position(product.id, stock_on_hand=0, current_cost_cents=0)

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock_on_hand == 5
