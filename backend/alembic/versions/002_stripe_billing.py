"""Add Stripe columns to users plus subscriptions, payments and stripe_events.

Revision ID: 002_stripe_billing
Revises: 001_initial
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_stripe_billing'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Stripe linkage on users
    op.add_column('auth_users', sa.Column('stripe_customer_id', sa.String(255), nullable=True))
    op.add_column('auth_users', sa.Column('stripe_subscription_id', sa.String(255), nullable=True))
    op.add_column('auth_users', sa.Column('stripe_price_id', sa.String(255), nullable=True))
    op.add_column('auth_users', sa.Column('stripe_current_period_end', sa.DateTime(timezone=True), nullable=True))
    op.create_unique_constraint('uq_auth_users_stripe_customer_id', 'auth_users', ['stripe_customer_id'])
    op.create_unique_constraint('uq_auth_users_stripe_subscription_id', 'auth_users', ['stripe_subscription_id'])

    # Subscriptions (mirror of Stripe subscription objects)
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('user_id', sa.String(50), sa.ForeignKey('auth_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=False, unique=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=False),
        sa.Column('stripe_price_id', sa.String(255), nullable=False),
        sa.Column('stripe_product_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('billing_cycle', sa.String(20), nullable=False),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancel_at_period_end', sa.Boolean(), server_default='false'),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    # Payments (invoice outcomes, one row per invoice)
    op.create_table(
        'payments',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('user_id', sa.String(50), nullable=False),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=False, unique=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(10), server_default='usd'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('invoice_url', sa.Text(), nullable=True),
        sa.Column('invoice_pdf', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    # Processed webhook event ids
    op.create_table(
        'stripe_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('stripe_events')
    op.drop_table('payments')
    op.drop_table('subscriptions')
    op.drop_constraint('uq_auth_users_stripe_subscription_id', 'auth_users', type_='unique')
    op.drop_constraint('uq_auth_users_stripe_customer_id', 'auth_users', type_='unique')
    op.drop_column('auth_users', 'stripe_current_period_end')
    op.drop_column('auth_users', 'stripe_price_id')
    op.drop_column('auth_users', 'stripe_subscription_id')
    op.drop_column('auth_users', 'stripe_customer_id')
