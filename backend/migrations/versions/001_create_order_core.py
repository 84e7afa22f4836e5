"""
Alembic migration: Create order core schema.

This migration creates the products table orders are placed against, the
orders table with pricing, payment and shipping fields, the write-once
order_items snapshots and the append-only order_tracking ledger. Stock and
money columns carry non-negative check constraints.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUS_VALUES = (
    'pending',
    'confirmed',
    'processing',
    'shipped',
    'in_transit',
    'delivered',
    'cancelled',
)
PAYMENT_STATUS_VALUES = ('pending', 'paid', 'failed', 'refunded')
PAYMENT_METHOD_VALUES = (
    'bank_transfer',
    'credit_card',
    'digital_wallet',
    'upi',
    'cash_on_delivery',
)
PRODUCT_STATUS_VALUES = ('draft', 'active', 'inactive', 'sold_out', 'expired')
QUALITY_GRADE_VALUES = ('premium', 'standard', 'economy')

ENUM_TYPES = {
    'order_status': ORDER_STATUS_VALUES,
    'payment_status': PAYMENT_STATUS_VALUES,
    'payment_method': PAYMENT_METHOD_VALUES,
    'product_status': PRODUCT_STATUS_VALUES,
    'quality_grade': QUALITY_GRADE_VALUES,
}


def _enum(name: str) -> postgresql.ENUM:
    """Column type for an enum created up front in upgrade()."""
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Row creation time',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Last modification time',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema with the order core tables.

    Enum types are created once and shared: order_status is used by both
    orders and order_tracking, quality_grade by products and order_items.
    """
    bind = op.get_bind()

    for name, values in ENUM_TYPES.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    # Products
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('farmer_id', sa.Uuid(as_uuid=True), nullable=False,
                  comment='Farmer who owns the listing'),
        sa.Column('name', sa.String(length=255), nullable=False,
                  comment='Product display name'),
        sa.Column('images', sa.JSON(), nullable=False,
                  comment='Image URLs, cover image first'),
        sa.Column('price_per_unit', sa.Numeric(precision=10, scale=2),
                  nullable=False, comment='Current unit price'),
        sa.Column('unit', sa.String(length=50), nullable=False,
                  comment='Unit of sale'),
        sa.Column('available_stock', sa.Numeric(precision=12, scale=3),
                  nullable=False, server_default=sa.text('0'),
                  comment='Quantity available for reservation'),
        sa.Column('min_order', sa.Numeric(precision=12, scale=3),
                  nullable=False, server_default=sa.text('1'),
                  comment='Minimum quantity per order'),
        sa.Column('max_order', sa.Numeric(precision=12, scale=3),
                  nullable=True, comment='Maximum quantity per order'),
        sa.Column('quality_grade', _enum('quality_grade'), nullable=True,
                  comment='Quality grade'),
        sa.Column('organic', sa.Boolean(), nullable=False,
                  server_default=sa.false(), comment='Certified organic'),
        sa.Column('harvest_date', sa.DateTime(timezone=True), nullable=True,
                  comment='Harvest date'),
        sa.Column('status', _enum('product_status'),
                  nullable=False, server_default='active',
                  comment='Listing status'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.CheckConstraint('available_stock >= 0',
                           name='ck_products_available_stock_non_negative'),
        sa.CheckConstraint('price_per_unit >= 0',
                           name='ck_products_price_non_negative'),
        sa.CheckConstraint('min_order > 0',
                           name='ck_products_min_order_positive'),
        sa.CheckConstraint('max_order IS NULL OR max_order >= min_order',
                           name='ck_products_max_order_range'),
    )
    op.create_index('ix_products_farmer_id', 'products', ['farmer_id'])
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('ix_products_farmer_status', 'products', ['farmer_id', 'status'])

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('order_number', sa.String(length=100), nullable=False,
                  comment='Human-readable order number'),
        sa.Column('buyer_id', sa.Uuid(as_uuid=True), nullable=False,
                  comment='Buyer who placed the order'),
        sa.Column('farmer_id', sa.Uuid(as_uuid=True), nullable=False,
                  comment='Farmer fulfilling the order'),
        sa.Column('vendor_id', sa.Uuid(as_uuid=True), nullable=True,
                  comment='Vendor the order was placed through'),
        sa.Column('transporter_id', sa.Uuid(as_uuid=True), nullable=True,
                  comment='Transporter assigned for delivery'),
        sa.Column('sub_total', sa.Numeric(precision=12, scale=2),
                  nullable=False, comment='Sum of item totals'),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2),
                  nullable=False, server_default=sa.text('0.00'),
                  comment='Tax amount'),
        sa.Column('shipping_cost', sa.Numeric(precision=12, scale=2),
                  nullable=False, server_default=sa.text('0.00'),
                  comment='Shipping charge'),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2),
                  nullable=False, server_default=sa.text('0.00'),
                  comment='Applied discount'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2),
                  nullable=False, comment='Grand total'),
        sa.Column('status', _enum('order_status'), nullable=False,
                  server_default='pending', comment='Current order status'),
        sa.Column('payment_status', _enum('payment_status'),
                  nullable=False, server_default='pending',
                  comment='Current payment status'),
        sa.Column('payment_method', _enum('payment_method'),
                  nullable=False, comment='Payment method chosen at checkout'),
        sa.Column('payment_id', sa.String(length=255), nullable=True,
                  comment='Gateway payment reference'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True,
                  comment='When payment was confirmed'),
        sa.Column('refund_required', sa.Boolean(), nullable=False,
                  server_default=sa.false(),
                  comment='Paid order was cancelled and awaits an external refund'),
        sa.Column('shipping_address', sa.Text(), nullable=False,
                  comment='Shipping street address'),
        sa.Column('shipping_city', sa.String(length=100), nullable=False,
                  comment='Shipping city'),
        sa.Column('shipping_state', sa.String(length=100), nullable=False,
                  comment='Shipping state or region'),
        sa.Column('shipping_zip_code', sa.String(length=20), nullable=True,
                  comment='Shipping postal code'),
        sa.Column('shipping_notes', sa.Text(), nullable=True,
                  comment='Delivery notes'),
        sa.Column('estimated_delivery', sa.DateTime(timezone=True), nullable=True,
                  comment='Estimated delivery time'),
        sa.Column('actual_delivery', sa.DateTime(timezone=True), nullable=True,
                  comment='Actual delivery time'),
        sa.Column('tracking_number', sa.String(length=100), nullable=True,
                  comment='Carrier tracking number'),
        sa.Column('tracking_url', sa.Text(), nullable=True,
                  comment='Carrier tracking URL'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True,
                  comment='When the order was cancelled'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sa.CheckConstraint('sub_total >= 0', name='ck_orders_sub_total_non_negative'),
        sa.CheckConstraint('tax_amount >= 0', name='ck_orders_tax_amount_non_negative'),
        sa.CheckConstraint('shipping_cost >= 0',
                           name='ck_orders_shipping_cost_non_negative'),
        sa.CheckConstraint('discount_amount >= 0',
                           name='ck_orders_discount_amount_non_negative'),
        sa.CheckConstraint('total_amount >= 0',
                           name='ck_orders_total_amount_non_negative'),
    )
    for column in ('buyer_id', 'farmer_id', 'vendor_id', 'transporter_id',
                   'status', 'payment_status'):
        op.create_index(f'ix_orders_{column}', 'orders', [column])
    op.create_index('ix_orders_buyer_status', 'orders', ['buyer_id', 'status'])
    op.create_index('ix_orders_farmer_status', 'orders', ['farmer_id', 'status'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    # Order items
    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_image', sa.Text(), nullable=True),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('unit', sa.String(length=50), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('quality_grade', _enum('quality_grade'), nullable=True),
        sa.Column('organic', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('harvest_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_order_items_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'],
            name='fk_order_items_product_id',
            ondelete='RESTRICT',
        ),
        sa.UniqueConstraint('order_id', 'product_id', name='uq_order_items_product'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0',
                           name='ck_order_items_unit_price_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    # Tracking ledger
    op.create_table(
        'order_tracking',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', _enum('order_status'), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_order_tracking'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_order_tracking_order_id',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint('order_id', 'sequence', name='uq_order_tracking_sequence'),
        sa.CheckConstraint('sequence > 0', name='ck_order_tracking_sequence_positive'),
    )
    op.create_index('ix_order_tracking_order_id', 'order_tracking', ['order_id'])
    op.create_index('ix_order_tracking_created_at', 'order_tracking', ['created_at'])


def downgrade() -> None:
    """
    Downgrade database schema by dropping the order core tables.

    Tables are dropped children first, then the shared enum types.
    """
    op.drop_index('ix_order_tracking_created_at', table_name='order_tracking')
    op.drop_index('ix_order_tracking_order_id', table_name='order_tracking')
    op.drop_table('order_tracking')

    op.drop_index('ix_order_items_product_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_farmer_status', table_name='orders')
    op.drop_index('ix_orders_buyer_status', table_name='orders')
    for column in ('buyer_id', 'farmer_id', 'vendor_id', 'transporter_id',
                   'status', 'payment_status'):
        op.drop_index(f'ix_orders_{column}', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_products_farmer_status', table_name='products')
    op.drop_index('ix_products_status', table_name='products')
    op.drop_index('ix_products_farmer_id', table_name='products')
    op.drop_table('products')

    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
