"""create_donation_tables

Revision ID: 4c1d2e7a9b10
Revises:
Create Date: 2025-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1d2e7a9b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False, comment='User ID'),
        sa.Column('username', sa.String(length=50), nullable=True, comment='Username'),
        sa.Column('name', sa.String(length=100), nullable=True, comment='Display name'),
        sa.Column('donation_method', sa.String(length=20), nullable=True, comment='Preferred processor: STRIPE/PAYPAL'),
        sa.Column('stripe_account_id', sa.String(length=100), nullable=True, comment='Stripe connected account id'),
        sa.Column('paypal_link', sa.String(length=255), nullable=True, comment='PayPal payee email or paypal.me link'),
        sa.Column('donations_enabled', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Accepts donations'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'donations',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Donation ID (uuid4)'),
        sa.Column('donor_id', sa.String(length=36), nullable=False, comment='Donor user ID'),
        sa.Column('recipient_id', sa.String(length=36), nullable=False, comment='Recipient user ID'),
        sa.Column('amount', sa.Integer(), nullable=False, comment='Amount in cents'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='ISO-4217 currency'),
        sa.Column('message', sa.Text(), nullable=True, comment='Donor message'),
        sa.Column('story_id', sa.String(length=36), nullable=True, comment='Story the donation is attached to'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='STRIPE/PAYPAL'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='pending/collected/succeeded/failed'),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True, comment='Stripe PaymentIntent id'),
        sa.Column('paypal_order_id', sa.String(length=255), nullable=True, comment='PayPal order id'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_donations_amount_positive'),
        sa.ForeignKeyConstraint(['donor_id'], ['users.id']),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_payment_intent_id'),
        sa.UniqueConstraint('paypal_order_id'),
    )
    op.create_index('ix_donations_donor_id', 'donations', ['donor_id'])
    op.create_index('ix_donations_recipient_id', 'donations', ['recipient_id'])
    op.create_index('ix_donations_story_id', 'donations', ['story_id'])
    op.create_index('ix_donations_status', 'donations', ['status'])
    op.create_index('ix_donations_created_at', 'donations', ['created_at'])
    op.create_index('ix_donations_recipient_status', 'donations', ['recipient_id', 'status'])
    op.create_index('ix_donations_donor_created', 'donations', ['donor_id', 'created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='Recipient user ID'),
        sa.Column('type', sa.String(length=30), nullable=False, comment='Notification type'),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('content', sa.JSON(), nullable=True, comment='Structured payload'),
        sa.Column('actor_id', sa.String(length=36), nullable=True, comment='User who triggered it'),
        sa.Column('donation_id', sa.String(length=36), nullable=True, comment='Related donation'),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id']),
        sa.ForeignKeyConstraint(['donation_id'], ['donations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'type', 'donation_id', name='uq_notifications_user_type_donation'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'read'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('donations')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
