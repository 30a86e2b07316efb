"""
Pytest fixtures for lot ledger backend tests.

Provides an in-memory SQLite app, a cleared session per test, factories for
products, lots and quotations, and the in-memory store used by service tests.
"""

from datetime import datetime, timedelta

import pytest

from lotledger import create_app
from lotledger.extensions import db
from lotledger.models import Product, Lot, Quotation, QuotationLine
from lotledger.records import LOT_STATUS_ACTIVE, LOT_STATUS_EXHAUSTED, QUOTATION_STATUS_PENDING

from fakes import InMemoryStore

BASE_TIME = datetime(2026, 1, 1, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CONFIRM_RETRY_ATTEMPTS': 3,
        'CONFIRM_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def store():
    """Empty in-memory store for unit-of-work based service tests."""
    return InMemoryStore()


@pytest.fixture
def make_product(db_session):
    counter = {"n": 0}

    def _make(name="Product", *, stock_on_hand=0, current_cost_cents=0, price_cents=1000):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            name=name,
            stock_on_hand=stock_on_hand,
            current_cost_cents=current_cost_cents,
            price_cents=price_cents,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_lot(db_session):
    """Insert a lot directly (no stock bookkeeping); days_ago orders lots FIFO."""

    def _make(product, quantity, unit_cost_cents, *, days_ago=0, remaining=None):
        remaining = quantity if remaining is None else remaining
        lot = Lot(
            product_id=product.id,
            quantity_received=quantity,
            quantity_remaining=remaining,
            unit_cost_cents=unit_cost_cents,
            received_at=BASE_TIME - timedelta(days=days_ago),
            status=LOT_STATUS_ACTIVE if remaining > 0 else LOT_STATUS_EXHAUSTED,
        )
        db_session.add(lot)
        db_session.commit()
        return lot

    return _make


@pytest.fixture
def make_quotation(db_session):
    """lines: iterable of (product, quantity, unit_price_cents)."""

    def _make(lines, *, payment_method="CASH", payment_split=None, customer_id=None):
        lines = list(lines)
        quotation = Quotation(
            status=QUOTATION_STATUS_PENDING,
            customer_id=customer_id,
            total_cents=sum(qty * price for _, qty, price in lines),
            payment_method=payment_method,
            payment_split=payment_split,
        )
        db_session.add(quotation)
        db_session.flush()
        for product, quantity, price in lines:
            db_session.add(QuotationLine(
                quotation_id=quotation.id,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price_cents=price,
                line_total_cents=quantity * price,
            ))
        db_session.commit()
        return quotation

    return _make
