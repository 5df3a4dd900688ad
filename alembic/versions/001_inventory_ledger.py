"""Inventory ledger and production schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Adds:
- products, warehouses catalog tables
- formulas and formula_items
- stock_levels (unique per product/warehouse/batch) and stock_movements journal
- stock_transfers
- inventory_adjustments with approval columns
- production_runs, production_run_items, production_losses
- settings key/value store
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Catalog
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(255), nullable=False, index=True),
        sa.Column('unit_of_measure', sa.String(20), nullable=False, server_default='kg'),
        sa.Column('inventory_type', sa.String(20), nullable=False, server_default='raw_material'),
        sa.Column('track_inventory', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reorder_level', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('critical_level', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'warehouses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # Formulas
    op.create_table(
        'formulas',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('formula_code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'formula_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('formula_id', sa.Integer(),
                  sa.ForeignKey('formulas.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('percentage', sa.Numeric(9, 4), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False, server_default='1'),
    )

    # Stock ledger
    op.create_table(
        'stock_levels',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'),
                  nullable=False, index=True),
        sa.Column('batch_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('product_id', 'warehouse_id', 'batch_id',
                            name='uq_stock_level_key'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_level_quantity_non_negative'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_stock_level_reserved_non_negative'),
        sa.CheckConstraint('reserved_quantity <= quantity',
                           name='ck_stock_level_reserved_le_quantity'),
    )

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'),
                  nullable=False, index=True),
        sa.Column('batch_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('movement_type', sa.String(30), nullable=False, index=True),
        sa.Column('quantity_delta', sa.Numeric(18, 4), nullable=False),
        sa.Column('resulting_quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('reference_type', sa.String(30), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
    )
    op.create_index('ix_stock_movements_reference', 'stock_movements',
                    ['reference_type', 'reference_id'])

    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('transfer_number', sa.String(50), nullable=False, unique=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('from_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'),
                  nullable=False, index=True),
        sa.Column('to_warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'),
                  nullable=False, index=True),
        sa.Column('batch_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # Adjustments
    op.create_table(
        'inventory_adjustments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('adjustment_number', sa.String(50), nullable=False, unique=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'),
                  nullable=False, index=True),
        sa.Column('batch_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('adjustment_type', sa.String(30), nullable=False),
        sa.Column('quantity_change', sa.Numeric(18, 4), nullable=False),
        sa.Column('quantity_before', sa.Numeric(18, 4), nullable=True),
        sa.Column('quantity_after', sa.Numeric(18, 4), nullable=True),
        sa.Column('reason', sa.String(500), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending', index=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_notes', sa.String(500), nullable=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('movement_id', sa.Integer(), sa.ForeignKey('stock_movements.id'),
                  nullable=True),
        *_timestamps(),
    )

    # Production
    op.create_table(
        'production_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('production_number', sa.String(50), nullable=False, unique=True),
        sa.Column('formula_id', sa.Integer(), sa.ForeignKey('formulas.id'),
                  nullable=False, index=True),
        sa.Column('finished_product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id'),
                  nullable=False, index=True),
        sa.Column('production_date', sa.Date(), nullable=False, index=True),
        sa.Column('batch_number', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='planned', index=True),
        sa.Column('target_quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('actual_output', sa.Numeric(18, 4), nullable=True),
        sa.Column('wastage_quantity', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('wastage_percentage', sa.Numeric(18, 6), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('started_by', sa.Integer(), nullable=True),
        sa.Column('completed_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'production_run_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('production_run_id', sa.Integer(),
                  sa.ForeignKey('production_runs.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('percentage', sa.Numeric(9, 4), nullable=False),
        sa.Column('planned_quantity', sa.Numeric(24, 10), nullable=False),
        sa.Column('actual_quantity', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('variance', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('unit_of_measure', sa.String(20), nullable=False, server_default='kg'),
    )

    op.create_table(
        'production_losses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('production_run_id', sa.Integer(),
                  sa.ForeignKey('production_runs.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'),
                  nullable=False, index=True),
        sa.Column('quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('loss_type', sa.String(30), nullable=False),
        sa.Column('reason', sa.String(500), nullable=False),
        sa.Column('recorded_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # Settings
    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('group', sa.String(50), nullable=False, index=True),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('group', 'key', name='uq_settings_group_key'),
    )


def downgrade() -> None:
    op.drop_table('settings')
    op.drop_table('production_losses')
    op.drop_table('production_run_items')
    op.drop_table('production_runs')
    op.drop_table('inventory_adjustments')
    op.drop_table('stock_transfers')
    op.drop_index('ix_stock_movements_reference', table_name='stock_movements')
    op.drop_table('stock_movements')
    op.drop_table('stock_levels')
    op.drop_table('formula_items')
    op.drop_table('formulas')
    op.drop_table('warehouses')
    op.drop_table('products')
