"""initial stock ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the batch-and-ledger schema:
- products: catalog master (archived, never deleted)
- batches: received lots with fixed unit cost and optimistic version_id
- stock_transactions: append-only IN/OUT ledger
- app_settings: display thresholds (key/value)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('shelf_life_days', sa.Integer(), nullable=True),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name_archived', 'products', ['name', 'is_archived'])
    op.create_index('ix_products_is_archived', 'products', ['is_archived'])

    # ============================================================================
    # batches
    # ============================================================================
    op.create_table(
        'batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('production_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('initial_quantity', sa.Integer(), nullable=False),
        sa.Column('current_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_batches_product_id_products'),
        sa.CheckConstraint('initial_quantity > 0', name='ck_batches_initial_quantity_positive'),
        sa.CheckConstraint(
            'current_quantity >= 0 AND current_quantity <= initial_quantity',
            name='ck_batches_current_quantity_bounds',
        ),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_batches_unit_cost_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_batches'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_batches_product_created', 'batches', ['product_id', 'created_at'])
    op.create_index('ix_batches_product_id', 'batches', ['product_id'])
    op.create_index('ix_batches_expiry_date', 'batches', ['expiry_date'])
    op.create_index('ix_batches_created_at', 'batches', ['created_at'])

    # ============================================================================
    # stock_transactions: append-only ledger
    # ============================================================================
    op.create_table(
        'stock_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('batch_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('unit_cost_cents_at_transaction', sa.Integer(), nullable=True),
        sa.Column('is_correction_increase', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_transactions_product_id_products'),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], name='fk_stock_transactions_batch_id_batches'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_transactions_quantity_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_transactions'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stocktx_product_timestamp', 'stock_transactions', ['product_id', 'timestamp'])
    op.create_index('ix_stocktx_batch_timestamp', 'stock_transactions', ['batch_id', 'timestamp'])
    op.create_index('ix_stock_transactions_product_id', 'stock_transactions', ['product_id'])
    op.create_index('ix_stock_transactions_batch_id', 'stock_transactions', ['batch_id'])
    op.create_index('ix_stock_transactions_type', 'stock_transactions', ['type'])
    op.create_index('ix_stock_transactions_timestamp', 'stock_transactions', ['timestamp'])
    op.create_index('ix_stock_transactions_reason', 'stock_transactions', ['reason'])

    # ============================================================================
    # app_settings
    # ============================================================================
    op.create_table(
        'app_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_app_settings'),
        sa.UniqueConstraint('key', name='uq_app_settings_key'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('app_settings')

    op.drop_index('ix_stock_transactions_reason', table_name='stock_transactions')
    op.drop_index('ix_stock_transactions_timestamp', table_name='stock_transactions')
    op.drop_index('ix_stock_transactions_type', table_name='stock_transactions')
    op.drop_index('ix_stock_transactions_batch_id', table_name='stock_transactions')
    op.drop_index('ix_stock_transactions_product_id', table_name='stock_transactions')
    op.drop_index('ix_stocktx_batch_timestamp', table_name='stock_transactions')
    op.drop_index('ix_stocktx_product_timestamp', table_name='stock_transactions')
    op.drop_table('stock_transactions')

    op.drop_index('ix_batches_created_at', table_name='batches')
    op.drop_index('ix_batches_expiry_date', table_name='batches')
    op.drop_index('ix_batches_product_id', table_name='batches')
    op.drop_index('ix_batches_product_created', table_name='batches')
    op.drop_table('batches')

    op.drop_index('ix_products_is_archived', table_name='products')
    op.drop_index('ix_products_name_archived', table_name='products')
    op.drop_table('products')
