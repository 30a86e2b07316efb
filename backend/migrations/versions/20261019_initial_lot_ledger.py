"""Initial lot ledger schema: products, lots, quotations, sales, payments, lot movements

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Every table carries version_id for optimistic concurrency (SQLAlchemy
version_id_col). Money columns are integer cents.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS & LOTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('stock_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sa.CheckConstraint('stock_on_hand >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table('lots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('lot_code', sa.String(length=64), nullable=True),
        sa.Column('supplier_ref', sa.String(length=128), nullable=True),
        sa.Column('quantity_received', sa.Integer(), nullable=False),
        sa.Column('quantity_remaining', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity_remaining >= 0', name='ck_lots_remaining_non_negative'),
        sa.CheckConstraint('quantity_remaining <= quantity_received', name='ck_lots_remaining_le_received'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_lots_product_id', 'lots', ['product_id'])
    op.create_index('ix_lots_status', 'lots', ['status'])
    op.create_index('ix_lots_product_status_received', 'lots', ['product_id', 'status', 'received_at'])

    # ==========================================================================
    # 2. SALES, SALE LINES, PAYMENTS
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quotation_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('sale_type', sa.String(length=32), nullable=False, server_default='QUOTATION'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('quotation_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_status_completed', 'sales', ['status', 'completed_at'])

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('cost_total_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('unit_profit_cents', sa.Integer(), nullable=False),
        sa.Column('profit_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])

    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_payments_sale_id', 'payments', ['sale_id'])

    # ==========================================================================
    # 3. QUOTATIONS
    # ==========================================================================
    op.create_table('quotations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='CASH'),
        sa.Column('payment_split', sa.JSON(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_quotations_customer_id', 'quotations', ['customer_id'])
    op.create_index('ix_quotations_status', 'quotations', ['status'])
    op.create_index('ix_quotations_status_created', 'quotations', ['status', 'created_at'])

    op.create_table('quotation_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quotation_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['quotation_id'], ['quotations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_quotation_lines_quotation_id', 'quotation_lines', ['quotation_id'])

    # ==========================================================================
    # 4. LOT MOVEMENTS (append-only)
    # ==========================================================================
    op.create_table('lot_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('sale_line_id', sa.Integer(), nullable=True),
        sa.Column('lot_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False, server_default='SALE'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('remaining_after', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['sale_line_id'], ['sale_lines.id']),
        sa.ForeignKeyConstraint(['lot_id'], ['lots.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_lot_movements_sale_id', 'lot_movements', ['sale_id'])
    op.create_index('ix_lot_movements_lot_id', 'lot_movements', ['lot_id'])
    op.create_index('ix_lot_movements_product_occurred', 'lot_movements', ['product_id', 'occurred_at'])


def downgrade():
    op.drop_table('lot_movements')
    op.drop_table('quotation_lines')
    op.drop_table('quotations')
    op.drop_table('payments')
    op.drop_table('sale_lines')
    op.drop_table('sales')
    op.drop_table('lots')
    op.drop_table('products')
