"""Create billing schema

Revision ID: 20261017_0900
Revises: 
Create Date: 2026-10-17 09:00:00.000000

This migration adds:
- users: accounts with role and the entitlement snapshot
  (subscription_status, current_subscription_id, purchased_portals, enabled_features)
- orders: checkout orders paired with a Razorpay order id
- subscriptions: time-boxed entitlements created from paid orders
- payments: confirmed payments, unique per provider payment id
- pricing_settings: persisted admin overrides of the price catalog
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic
revision = '20261017_0900'
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = postgresql.ENUM('user', 'admin', name='user_role', create_type=False)
user_subscription_status_enum = postgresql.ENUM(
    'active', 'inactive', 'cancelled',
    name='user_subscription_status',
    create_type=False
)
subscription_status_enum = postgresql.ENUM(
    'active', 'inactive', 'cancelled',
    name='subscription_status',
    create_type=False
)
order_status_enum = postgresql.ENUM(
    'created', 'paid', 'failed', 'expired',
    name='order_status',
    create_type=False
)
payment_status_enum = postgresql.ENUM(
    'success', 'failed', 'pending',
    name='payment_status',
    create_type=False
)
billing_cycle_enum = postgresql.ENUM('monthly', 'annual', name='billing_cycle', create_type=False)

ALL_ENUMS = (
    user_role_enum,
    user_subscription_status_enum,
    subscription_status_enum,
    order_status_enum,
    payment_status_enum,
    billing_cycle_enum,
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)
    
    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', user_role_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('subscription_status', user_subscription_status_enum, nullable=False),
        sa.Column('current_subscription_id', sa.Uuid(), nullable=True),
        sa.Column('purchased_portals', sa.JSON(), nullable=False),
        sa.Column('enabled_features', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    
    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('provider_order_id', sa.String(64), nullable=False),
        sa.Column('receipt', sa.String(40), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('amount_in_smallest_unit', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('selected_portals', sa.JSON(), nullable=False),
        sa.Column('selected_features', sa.JSON(), nullable=False),
        sa.Column('billing_cycle', billing_cycle_enum, nullable=False),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('failure_reason', sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_orders_user_id_users', ondelete='CASCADE'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_provider_order_id', 'orders', ['provider_order_id'], unique=True)
    op.create_index('ix_orders_status', 'orders', ['status'])
    
    # Subscriptions
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('portals', sa.JSON(), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('billing_cycle', billing_cycle_enum, nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', subscription_status_enum, nullable=False),
        sa.Column('auto_renew', sa.Boolean(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_subscriptions'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_subscriptions_user_id_users', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_subscriptions_order_id_orders', ondelete='CASCADE'),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_end_date', 'subscriptions', ['end_date'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    
    # Payments
    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('payment_id', sa.String(64), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('provider_order_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('subscription_id', sa.Uuid(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', payment_status_enum, nullable=False),
        sa.Column('signature', sa.String(128), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_payments_order_id_orders', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_payments_user_id_users', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['subscription_id'], ['subscriptions.id'],
            name='fk_payments_subscription_id_subscriptions',
            ondelete='SET NULL',
        ),
    )
    op.create_index('ix_payments_payment_id', 'payments', ['payment_id'], unique=True)
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    
    # Pricing settings
    op.create_table(
        'pricing_settings',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('key', sa.String(50), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_pricing_settings'),
        sa.UniqueConstraint('key', name='uq_pricing_settings_key'),
    )


def downgrade() -> None:
    op.drop_table('pricing_settings')
    op.drop_table('payments')
    op.drop_table('subscriptions')
    op.drop_table('orders')
    op.drop_table('users')
    
    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
