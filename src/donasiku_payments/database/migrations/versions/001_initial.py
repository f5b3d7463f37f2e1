"""Initial migration - campaigns, transactions, donations, audit and settings tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True, unique=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('profiles.id'), nullable=True),
        sa.Column('target_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('current_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('merchant_order_id', sa.String(64), nullable=False),
        sa.Column('invoice_code', sa.String(64), nullable=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id'), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('payment_method', sa.String(16), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(32), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('duitku_reference', sa.String(64), nullable=True),
        sa.Column('result_code', sa.String(8), nullable=True),
        sa.Column('status_message', sa.Text(), nullable=True),
        sa.Column('settlement_date', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_transactions_merchant_order_id', 'transactions', ['merchant_order_id'], unique=True)
    op.create_index('ix_transactions_status_created_at', 'transactions', ['status', 'created_at'])
    op.create_index('ix_transactions_campaign_id', 'transactions', ['campaign_id'])

    op.create_table(
        'donations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('transaction_id', sa.String(36), sa.ForeignKey('transactions.id'), nullable=False, unique=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id'), nullable=False),
        sa.Column('donor_name', sa.String(255), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('payment_method', sa.String(16), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='completed'),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_donations_campaign_id', 'donations', ['campaign_id'])

    op.create_table(
        'transaction_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('transaction_id', sa.String(36), sa.ForeignKey('transactions.id'), nullable=False),
        sa.Column('source', sa.String(16), nullable=False),
        sa.Column('previous_status', sa.String(16), nullable=False),
        sa.Column('new_status', sa.String(16), nullable=False),
        sa.Column('result_code', sa.String(8), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_transaction_history_transaction_id', 'transaction_history', ['transaction_id'])

    op.create_table(
        'app_settings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('whatsapp_success_template', sa.Text(), nullable=True),
        sa.Column('email_sender_name', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('payment_method_code', sa.String(16), nullable=False, unique=True),
        sa.Column('payment_method_name', sa.String(255), nullable=False),
        sa.Column('payment_image', sa.Text(), nullable=True),
        sa.Column('total_fee', sa.String(32), nullable=True),
        sa.Column('category', sa.String(32), nullable=False, server_default='other'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('payment_methods')
    op.drop_table('app_settings')

    op.drop_index('ix_transaction_history_transaction_id', table_name='transaction_history')
    op.drop_table('transaction_history')

    op.drop_index('ix_donations_campaign_id', table_name='donations')
    op.drop_table('donations')

    op.drop_index('ix_transactions_campaign_id', table_name='transactions')
    op.drop_index('ix_transactions_status_created_at', table_name='transactions')
    op.drop_index('ix_transactions_merchant_order_id', table_name='transactions')
    op.drop_table('transactions')

    op.drop_table('campaigns')
    op.drop_table('profiles')
