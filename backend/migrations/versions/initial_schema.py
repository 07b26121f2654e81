"""initial schema: users, delivery zones, market stands, products, orders

Revision ID: initial_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('role', sa.String(20), server_default='USER', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'delivery_zones',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('zip_codes', sa.JSON(), nullable=False),
        sa.Column('cities', sa.JSON(), nullable=False),
        sa.Column('states', sa.JSON(), nullable=False),
        sa.Column('delivery_days', sa.JSON(), nullable=False),
        sa.Column('delivery_time_windows', sa.JSON(), nullable=True),
        sa.Column('delivery_fee', sa.Integer(), server_default='0', nullable=False),
        sa.Column('free_delivery_threshold', sa.Integer(), nullable=True),
        sa.Column('minimum_order', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('flagged_for_review', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('flag_reason', sa.Text(), nullable=True),
        sa.Column('is_suspended', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('suspended_at', sa.DateTime(), nullable=True),
        sa.Column('suspended_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('suspension_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delivery_zones_user_id', 'delivery_zones', ['user_id'])
    op.create_index('ix_delivery_zones_user_active', 'delivery_zones', ['user_id', 'is_active'])
    op.create_index('ix_delivery_zones_flagged', 'delivery_zones', ['flagged_for_review'])
    op.create_index('ix_delivery_zones_suspended', 'delivery_zones', ['is_suspended'])

    op.create_table(
        'market_stands',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location_name', sa.String(255), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_market_stands_user_id', 'market_stands', ['user_id'])
    op.create_index('ix_market_stands_status', 'market_stands', ['status'])

    op.create_table(
        'stand_status_history',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('market_stand_id', sa.String(36),
                  sa.ForeignKey('market_stands.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('old_status', sa.String(20), nullable=False),
        sa.Column('new_status', sa.String(20), nullable=False),
        sa.Column('changed_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stand_status_history_stand', 'stand_status_history', ['market_stand_id', 'created_at'])

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('market_stand_id', sa.String(36),
                  sa.ForeignKey('market_stands.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('inventory', sa.Integer(), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('delivery_available', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('delivery_zone_id', sa.String(36),
                  sa.ForeignKey('delivery_zones.id', ondelete='SET NULL'), nullable=True),
        sa.Column('delivery_type', sa.String(20), nullable=True),
        sa.Column('delivery_schedule', sa.JSON(), nullable=True),
        sa.Column('delivery_dates', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_user_id', 'products', ['user_id'])
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('ix_products_market_stand_id', 'products', ['market_stand_id'])
    op.create_index('ix_products_delivery_zone_id', 'products', ['delivery_zone_id'])
    op.create_index('ix_products_status_active', 'products', ['status', 'is_active'])

    op.create_table(
        'product_status_history',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('old_status', sa.String(20), nullable=False),
        sa.Column('new_status', sa.String(20), nullable=False),
        sa.Column('changed_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_product_status_history_product', 'product_status_history', ['product_id', 'created_at'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('order_number', sa.String(32), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('market_stand_id', sa.String(36), sa.ForeignKey('market_stands.id'), nullable=True),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('type', sa.String(20), server_default='PICKUP', nullable=False),
        sa.Column('delivery_date', sa.DateTime(), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('delivery_zone_id', sa.String(36), sa.ForeignKey('delivery_zones.id'), nullable=True),
        sa.Column('pickup_time', sa.DateTime(), nullable=True),
        sa.Column('subtotal', sa.Integer(), server_default='0', nullable=False),
        sa.Column('tax', sa.Integer(), server_default='0', nullable=False),
        sa.Column('fees', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_amount', sa.Integer(), server_default='0', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_zone_status_date', 'orders', ['delivery_zone_id', 'status', 'delivery_date'])
    op.create_index('ix_orders_market_stand_id', 'orders', ['market_stand_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_at_time', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_issues',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reported_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('issue_type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_issues_order_status', 'order_issues', ['order_id', 'status'])
    op.create_index('ix_order_issues_status_created', 'order_issues', ['status', 'created_at'])


def downgrade() -> None:
    for table in (
        'order_issues',
        'order_items',
        'orders',
        'product_status_history',
        'products',
        'stand_status_history',
        'market_stands',
        'delivery_zones',
        'users',
    ):
        op.drop_table(table)
