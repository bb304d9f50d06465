"""
Alembic migration: initial SupplyHub schema.

Creates users, products, addresses, quotes with their items, orders with
their items, deliveries and notifications. Enum columns are stored as
constrained strings so the schema is portable.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """
    Create all tables with their indexes and constraints.
    """
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'products',
        *_base_columns(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('unit', sa.String(50), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
    )
    op.create_index('ix_products_category', 'products', ['category'])

    op.create_table(
        'addresses',
        *_base_columns(),
        sa.Column(
            'user_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('label', sa.String(100), nullable=True),
        sa.Column('street', sa.String(255), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('latitude', sa.Numeric(9, 6), nullable=True),
        sa.Column('longitude', sa.Numeric(9, 6), nullable=True),
    )
    op.create_index('ix_addresses_user_id', 'addresses', ['user_id'])

    op.create_table(
        'quotes',
        *_base_columns(),
        sa.Column(
            'client_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'manager_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('sourcing_notes', sa.Text(), nullable=True),
        sa.Column(
            'locked_by_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('lock_expires_at', sa.DateTime(), nullable=True),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.CheckConstraint('total_amount >= 0', name='ck_quotes_total_non_negative'),
    )
    op.create_index('ix_quotes_client_id', 'quotes', ['client_id'])
    op.create_index('ix_quotes_manager_id', 'quotes', ['manager_id'])
    op.create_index('ix_quotes_status', 'quotes', ['status'])
    op.create_index('ix_quotes_status_lock_expiry', 'quotes', ['status', 'lock_expires_at'])
    op.create_index('ix_quotes_status_valid_until', 'quotes', ['status', 'valid_until'])

    op.create_table(
        'quote_items',
        *_base_columns(),
        sa.Column(
            'quote_id',
            sa.Uuid(),
            sa.ForeignKey('quotes.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'product_id',
            sa.Uuid(),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity > 0', name='ck_quote_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_quote_items_price_non_negative'),
    )
    op.create_index('ix_quote_items_quote_id', 'quote_items', ['quote_id'])

    op.create_table(
        'orders',
        *_base_columns(),
        sa.Column(
            'client_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'address_id',
            sa.Uuid(),
            sa.ForeignKey('addresses.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'quote_id',
            sa.Uuid(),
            sa.ForeignKey('quotes.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('payment_status', sa.String(16), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.UniqueConstraint('quote_id', name='uq_orders_quote_id'),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_client_id', 'orders', ['client_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_client_status', 'orders', ['client_id', 'status'])

    op.create_table(
        'order_items',
        *_base_columns(),
        sa.Column(
            'order_id',
            sa.Uuid(),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'product_id',
            sa.Uuid(),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'deliveries',
        *_base_columns(),
        sa.Column(
            'order_id',
            sa.Uuid(),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'agent_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('delivery_code', sa.Text(), nullable=False),
        sa.Column('code_generated_at', sa.DateTime(), nullable=False),
        sa.Column('current_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('current_lng', sa.Numeric(9, 6), nullable=True),
        sa.Column('delivery_notes', sa.Text(), nullable=True),
        sa.Column('estimated_delivery', sa.DateTime(), nullable=True),
        sa.Column('actual_delivery', sa.DateTime(), nullable=True),
        sa.Column('client_verified_at', sa.DateTime(), nullable=True),
        sa.Column(
            'client_verified_by',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('manager_confirmed_at', sa.DateTime(), nullable=True),
        sa.Column(
            'manager_confirmed_by',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.UniqueConstraint('order_id', name='uq_deliveries_order_id'),
    )
    op.create_index('ix_deliveries_agent_id', 'deliveries', ['agent_id'])
    op.create_index('ix_deliveries_status', 'deliveries', ['status'])
    op.create_index('ix_deliveries_agent_status', 'deliveries', ['agent_id', 'status'])

    op.create_table(
        'notifications',
        *_base_columns(),
        sa.Column(
            'user_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.String(500), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'read'])


def downgrade() -> None:
    """
    Drop all tables in reverse dependency order.
    """
    op.drop_table('notifications')
    op.drop_table('deliveries')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('quote_items')
    op.drop_table('quotes')
    op.drop_table('addresses')
    op.drop_table('products')
    op.drop_table('users')
