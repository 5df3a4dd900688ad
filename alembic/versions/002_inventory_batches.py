"""Add inventory batches

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Adds:
- inventory_batches table (lot number, product, origin warehouse, expiry)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'inventory_batches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('production_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('inventory_batches')
