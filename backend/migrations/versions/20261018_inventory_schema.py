"""Inventory schema: stock records, usage ledger, activity log

Revision ID: 20261018_inventory
Revises:
Create Date: 2026-10-18

This migration adds:
1. inventory (stock records; unique sku, non-negative quantity)
2. inventory_usage (immutable consumption rows with cost snapshot)
3. activity_log (append-only action history)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_inventory'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. INVENTORY TABLE
    # ==========================================================================
    op.create_table('inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=128), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('make', sa.String(length=120), nullable=True),
        sa.Column('module', sa.String(length=120), nullable=True),
        sa.Column('supplier', sa.String(length=120), nullable=True),
        sa.Column('fcc_id', sa.String(length=64), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('total_cost_value_cents', sa.Integer(), nullable=True),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('year_from', sa.Integer(), nullable=True),
        sa.Column('year_to', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_nonneg'),
        sa.CheckConstraint('cost_cents IS NULL OR cost_cents >= 0', name='ck_inventory_cost_nonneg'),
        sa.CheckConstraint('low_stock_threshold >= 0', name='ck_inventory_threshold_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_inventory_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_make', ['make'], unique=False)
        batch_op.create_index('ix_inventory_supplier', ['supplier'], unique=False)

    # ==========================================================================
    # 2. INVENTORY USAGE TABLE
    # ==========================================================================
    op.create_table('inventory_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=True),
        sa.Column('job_id', sa.String(length=64), nullable=True),
        sa.Column('quantity_used', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents_at_use', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents_at_use', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sku_at_use', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity_used > 0', name='ck_inventory_usage_qty_positive'),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_usage', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_usage_inventory_id'), ['inventory_id'], unique=False)
        batch_op.create_index('ix_inventory_usage_job', ['job_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_usage_used_at'), ['used_at'], unique=False)

    # ==========================================================================
    # 3. ACTIVITY LOG TABLE
    # ==========================================================================
    op.create_table('activity_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action_type', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('entity_name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('activity_log', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_activity_log_action_type'), ['action_type'], unique=False)
        batch_op.create_index('ix_activity_log_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_activity_log_occurred_at'), ['occurred_at'], unique=False)


def downgrade():
    with op.batch_alter_table('activity_log', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_activity_log_occurred_at'))
        batch_op.drop_index('ix_activity_log_entity')
        batch_op.drop_index(batch_op.f('ix_activity_log_action_type'))
    op.drop_table('activity_log')

    with op.batch_alter_table('inventory_usage', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_inventory_usage_used_at'))
        batch_op.drop_index('ix_inventory_usage_job')
        batch_op.drop_index(batch_op.f('ix_inventory_usage_inventory_id'))
    op.drop_table('inventory_usage')

    with op.batch_alter_table('inventory', schema=None) as batch_op:
        batch_op.drop_index('ix_inventory_supplier')
        batch_op.drop_index('ix_inventory_make')
    op.drop_table('inventory')
