"""initial catalog schema

Revision ID: c0a1b2d3e4f5
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the catalog schema from scratch:
- stores, units, attributes, attribute_values
- items (products) with base unit and item type
- product_units: per-product unit conversions
- item_variations + item_variation_attribute_values
- stock with partial unique keys per item type
- ledger_events: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0a1b2d3e4f5'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # stores
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stores_code', 'stores', ['code'], unique=True)

    # ============================================================================
    # units: names only, conversions live on product_units
    # ============================================================================
    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # attributes / attribute_values
    # ============================================================================
    op.create_table(
        'attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'attribute_values',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attribute_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['attribute_id'], ['attributes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('attribute_id', 'value', name='uq_attribute_values_attribute_value'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_attribute_values_attribute_id', 'attribute_values', ['attribute_id'])

    # ============================================================================
    # items: product master
    # ============================================================================
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('item_type', sa.String(length=16), nullable=False, server_default='Standard'),
        sa.Column('base_unit_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('cost_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('retail_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('wholesale_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('enable_stock_management', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_taxable', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['base_unit_id'], ['units.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sa.CheckConstraint("item_type IN ('Standard', 'Variable')", name='ck_items_item_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_items_name', 'items', ['name'])
    op.create_index('ix_items_type_active', 'items', ['item_type', 'is_active'])
    op.create_index('ix_items_base_unit_id', 'items', ['base_unit_id'])
    op.create_index('ix_items_store_id', 'items', ['store_id'])

    # ============================================================================
    # product_units: 1 unit_id = conversion_factor x base unit
    # ============================================================================
    op.create_table(
        'product_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('base_unit_id', sa.Integer(), nullable=False),
        sa.Column('conversion_factor', sa.Numeric(12, 4), nullable=False),
        sa.Column('is_purchase_unit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_sales_unit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_base_unit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['base_unit_id'], ['units.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'unit_id', name='uq_product_units_product_unit'),
        sa.CheckConstraint('conversion_factor > 0', name='ck_product_units_factor_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_units_product_id', 'product_units', ['product_id'])
    op.create_index('ix_product_units_unit_id', 'product_units', ['unit_id'])
    op.create_index('ix_product_units_base_unit_id', 'product_units', ['base_unit_id'])

    # ============================================================================
    # item_variations + links to attribute values
    # ============================================================================
    op.create_table(
        'item_variations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('variant_name', sa.String(length=255), nullable=True),
        sa.Column('cost_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('retail_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('wholesale_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('barcode', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_item_variations_item_id', 'item_variations', ['item_id'])

    op.create_table(
        'item_variation_attribute_values',
        sa.Column('item_variation_id', sa.Integer(), nullable=False),
        sa.Column('attribute_value_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['item_variation_id'], ['item_variations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['attribute_value_id'], ['attribute_values.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('item_variation_id', 'attribute_value_id'),
    )
    op.create_index(
        'ix_item_variation_attribute_values_attribute_value_id',
        'item_variation_attribute_values',
        ['attribute_value_id'],
    )

    # ============================================================================
    # stock: on-hand per store in base units
    # ============================================================================
    op.create_table(
        'stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('item_variation_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 4), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['item_id'], ['items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['item_variation_id'], ['item_variations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_store_id', 'stock', ['store_id'])
    op.create_index('ix_stock_item_id', 'stock', ['item_id'])
    op.create_index('ix_stock_item_variation_id', 'stock', ['item_variation_id'])

    # Standard items: one row per (store, item); Variable items: one per (store, variation)
    op.create_index(
        'stock_store_item_unique_idx',
        'stock',
        ['store_id', 'item_id'],
        unique=True,
        sqlite_where=sa.text('item_variation_id IS NULL'),
        postgresql_where=sa.text('item_variation_id IS NULL'),
    )
    op.create_index(
        'stock_store_variation_unique_idx',
        'stock',
        ['store_id', 'item_variation_id'],
        unique=True,
        sqlite_where=sa.text('item_variation_id IS NOT NULL'),
        postgresql_where=sa.text('item_variation_id IS NOT NULL'),
    )

    # ============================================================================
    # ledger_events: append-only audit trail
    # ============================================================================
    op.create_table(
        'ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('event_category', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_events_event_type', 'ledger_events', ['event_type'])
    op.create_index('ix_ledger_events_event_category', 'ledger_events', ['event_category'])
    op.create_index('ix_ledger_events_occurred_at', 'ledger_events', ['occurred_at'])
    op.create_index('ix_ledger_events_entity', 'ledger_events', ['entity_type', 'entity_id'])
    op.create_index('ix_ledger_events_store_occurred', 'ledger_events', ['store_id', 'occurred_at'])


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('stock')
    op.drop_table('item_variation_attribute_values')
    op.drop_table('item_variations')
    op.drop_table('product_units')
    op.drop_table('items')
    op.drop_table('attribute_values')
    op.drop_table('attributes')
    op.drop_table('units')
    op.drop_table('stores')
