"""Initial inventory core: catalog, orders, stock ledger, adjustments, document sequences

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

Creates:
1. categories, products and suppliers (catalog)
2. orders (sales and purchases, single table) and order_lines
3. stock_adjustments and stock_adjustment_lines
4. stock_ledger_entries (append-only)
5. document_sequences (per-prefix, per-day invoice counters)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True,
    )

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('min_quantity', sa.Integer(), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False),
        sa.Column('unit_value', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('manufacturing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sa.CheckConstraint('min_quantity >= 0', name='ck_products_min_quantity_non_negative'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_name', 'products', ['name'], unique=False)
    op.create_index('ix_products_category_id', 'products', ['category_id'], unique=False)
    op.create_index('ix_products_active_name', 'products', ['is_active', 'name'], unique=False)

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_suppliers_name', 'suppliers', ['name'], unique=False)

    # ==========================================================================
    # 2. ORDERS (kind = sale | purchase)
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('order_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate', sa.Numeric(precision=7, scale=3), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('shipping_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('paid_cents', sa.Integer(), nullable=False),
        sa.Column('due_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False),
        # Sale
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        # Purchase
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('expected_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_kind', 'orders', ['kind'], unique=False)
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_supplier_id', 'orders', ['supplier_id'], unique=False)
    op.create_index('ix_orders_kind_date', 'orders', ['kind', 'order_date'], unique=False)
    op.create_index('ix_orders_kind_payment_status', 'orders', ['kind', 'payment_status'], unique=False)

    op.create_table('order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_lines_quantity_positive'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_order_lines_price_non_negative'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'], unique=False)
    op.create_index('ix_order_lines_product_id', 'order_lines', ['product_id'], unique=False)

    # ==========================================================================
    # 3. STOCK ADJUSTMENTS
    # ==========================================================================
    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('adjustment_type', sa.String(length=16), nullable=False),
        sa.Column('reason_code', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('adjusted_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustments_adjustment_type', 'stock_adjustments', ['adjustment_type'], unique=False)
    op.create_index('ix_stock_adjustments_adjusted_at', 'stock_adjustments', ['adjusted_at'], unique=False)

    op.create_table('stock_adjustment_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('adjustment_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('adjustment_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('previous_quantity >= 0', name='ck_adj_lines_previous_non_negative'),
        sa.CheckConstraint('new_quantity >= 0', name='ck_adj_lines_new_non_negative'),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustment_lines_adjustment_id', 'stock_adjustment_lines', ['adjustment_id'], unique=False)
    op.create_index('ix_stock_adjustment_lines_product_id', 'stock_adjustment_lines', ['product_id'], unique=False)

    # ==========================================================================
    # 4. STOCK LEDGER (append-only)
    # ==========================================================================
    op.create_table('stock_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('cause', sa.String(length=32), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('adjustment_id', sa.Integer(), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_stock_ledger_delta_nonzero'),
        sa.CheckConstraint('balance_after >= 0', name='ck_stock_ledger_balance_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_ledger_entries_product_id', 'stock_ledger_entries', ['product_id'], unique=False)
    op.create_index('ix_stock_ledger_entries_cause', 'stock_ledger_entries', ['cause'], unique=False)
    op.create_index('ix_stock_ledger_entries_order_id', 'stock_ledger_entries', ['order_id'], unique=False)
    op.create_index('ix_stock_ledger_entries_adjustment_id', 'stock_ledger_entries', ['adjustment_id'], unique=False)
    op.create_index('ix_stock_ledger_entries_reference', 'stock_ledger_entries', ['reference'], unique=False)
    op.create_index('ix_stock_ledger_entries_occurred_at', 'stock_ledger_entries', ['occurred_at'], unique=False)
    op.create_index('ix_stock_ledger_product_occurred', 'stock_ledger_entries', ['product_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 5. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('date_key', sa.String(length=6), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefix', 'date_key', name='uq_doc_sequences_prefix_date'),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table('document_sequences')
    op.drop_index('ix_stock_ledger_product_occurred', table_name='stock_ledger_entries')
    op.drop_index('ix_stock_ledger_entries_occurred_at', table_name='stock_ledger_entries')
    op.drop_index('ix_stock_ledger_entries_reference', table_name='stock_ledger_entries')
    op.drop_index('ix_stock_ledger_entries_adjustment_id', table_name='stock_ledger_entries')
    op.drop_index('ix_stock_ledger_entries_order_id', table_name='stock_ledger_entries')
    op.drop_index('ix_stock_ledger_entries_cause', table_name='stock_ledger_entries')
    op.drop_index('ix_stock_ledger_entries_product_id', table_name='stock_ledger_entries')
    op.drop_table('stock_ledger_entries')
    op.drop_index('ix_stock_adjustment_lines_product_id', table_name='stock_adjustment_lines')
    op.drop_index('ix_stock_adjustment_lines_adjustment_id', table_name='stock_adjustment_lines')
    op.drop_table('stock_adjustment_lines')
    op.drop_index('ix_stock_adjustments_adjusted_at', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_adjustment_type', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')
    op.drop_index('ix_order_lines_product_id', table_name='order_lines')
    op.drop_index('ix_order_lines_order_id', table_name='order_lines')
    op.drop_table('order_lines')
    op.drop_index('ix_orders_kind_payment_status', table_name='orders')
    op.drop_index('ix_orders_kind_date', table_name='orders')
    op.drop_index('ix_orders_supplier_id', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_payment_status', table_name='orders')
    op.drop_index('ix_orders_kind', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_suppliers_name', table_name='suppliers')
    op.drop_table('suppliers')
    op.drop_index('ix_products_active_name', table_name='products')
    op.drop_index('ix_products_category_id', table_name='products')
    op.drop_index('ix_products_name', table_name='products')
    op.drop_table('products')
    op.drop_table('categories')
