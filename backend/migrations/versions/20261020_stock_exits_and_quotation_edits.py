"""Stock exit notes on lot movements, cancelled_by on quotations

Revision ID: 20261020_stock_exits
Revises: 20261019_initial
Create Date: 2026-10-20

Stock exits (INTERNAL_USE, WASTE) reuse lot_movements with sale_id and
sale_line_id left NULL; the movement type carries the reason.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261020_stock_exits"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("lot_movements", schema=None) as batch_op:
        batch_op.add_column(sa.Column("note", sa.String(length=255), nullable=True))

    with op.batch_alter_table("quotations", schema=None) as batch_op:
        batch_op.add_column(sa.Column("cancelled_by", sa.String(length=255), nullable=True))


def downgrade():
    with op.batch_alter_table("quotations", schema=None) as batch_op:
        batch_op.drop_column("cancelled_by")

    with op.batch_alter_table("lot_movements", schema=None) as batch_op:
        batch_op.drop_column("note")
