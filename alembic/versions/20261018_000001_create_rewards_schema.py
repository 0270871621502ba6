"""Create rewards schema.

Users, deposit intents, referral rewards, withdrawals and the withdrawal
submission outbox.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

WAITING_ONLY = sa.text("status = 'waiting'")


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('telegram_id', sa.BigInteger(), nullable=True),
        sa.Column('balance', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('eligible', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('category', sa.String(20), nullable=True, comment='Silver, Gold, Platinum'),
        sa.Column('total_points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('referrer_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('balance >= 0', name='check_user_balance_non_negative'),
        sa.CheckConstraint('total_points_earned >= 0', name='check_user_points_non_negative'),
        sa.CheckConstraint('level >= 1 AND level <= 100', name='check_user_level_range'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'], unique=True)
    op.create_index('ix_users_eligible', 'users', ['eligible'])
    op.create_index('ix_users_referrer_id', 'users', ['referrer_id'])

    op.create_table(
        'deposit_intents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('expected_amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('base_amount', sa.DECIMAL(18, 8), nullable=True, comment='Plan price the reward is computed from'),
        sa.Column('category', sa.String(20), nullable=True),
        sa.Column('coin', sa.String(20), nullable=False, server_default='USDT'),
        sa.Column('network', sa.String(20), nullable=False, server_default='TRX'),
        sa.Column('deposit_address', sa.String(255), nullable=True),
        sa.Column('address_is_fallback', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('external_tx_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_tx_id'),
        sa.CheckConstraint('expected_amount > 0', name='check_intent_amount_positive'),
        sa.CheckConstraint(
            "status IN ('waiting', 'completed', 'expired')",
            name='check_intent_status',
        ),
    )
    op.create_index('ix_deposit_intents_user_id', 'deposit_intents', ['user_id'])
    op.create_index('ix_deposit_intents_status', 'deposit_intents', ['status'])
    op.create_index('idx_intent_status_expires', 'deposit_intents', ['status', 'expires_at'])
    op.create_index(
        'uq_intent_waiting_amount',
        'deposit_intents',
        ['expected_amount'],
        unique=True,
        postgresql_where=WAITING_ONLY,
    )
    op.create_index(
        'uq_intent_waiting_user',
        'deposit_intents',
        ['user_id'],
        unique=True,
        postgresql_where=WAITING_ONLY,
    )

    op.create_table(
        'referral_rewards',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 8), nullable=False, server_default='0'),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referrer_id', 'referred_user_id', name='uq_referral_reward_pair'),
    )
    op.create_index('ix_referral_rewards_referrer_id', 'referral_rewards', ['referrer_id'])
    op.create_index('ix_referral_rewards_referred_user_id', 'referral_rewards', ['referred_user_id'])

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('wallet_address', sa.String(255), nullable=False),
        sa.Column('network', sa.String(20), nullable=False, server_default='TRX'),
        sa.Column('external_tx_id', sa.String(255), nullable=True, comment='Exchange withdrawal id'),
        sa.Column('client_order_id', sa.String(64), nullable=True),
        sa.Column('review_status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('transfer_status', sa.String(20), nullable=False, server_default='Processing'),
        sa.Column('external_status', sa.String(50), nullable=True, comment='Raw status reported by the exchange'),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transfer_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_tx_id'),
        sa.UniqueConstraint('client_order_id'),
        sa.CheckConstraint('amount > 0', name='check_withdrawal_amount_positive'),
        sa.CheckConstraint(
            "review_status IN ('Pending', 'Approved', 'Rejected')",
            name='check_withdrawal_review_status',
        ),
        sa.CheckConstraint(
            "transfer_status IN ('Processing', 'Completed', 'Failed')",
            name='check_withdrawal_transfer_status',
        ),
    )
    op.create_index('ix_withdrawals_user_id', 'withdrawals', ['user_id'])
    op.create_index('ix_withdrawals_review_status', 'withdrawals', ['review_status'])
    op.create_index('idx_withdrawal_transfer_status', 'withdrawals', ['transfer_status'])

    op.create_table(
        'withdrawal_submissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 8), nullable=False),
        sa.Column('wallet_address', sa.String(255), nullable=False),
        sa.Column('network', sa.String(20), nullable=False),
        sa.Column('client_order_id', sa.String(64), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='reserved'),
        sa.Column('withdrawal_id', sa.Integer(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['withdrawal_id'], ['withdrawals.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_order_id'),
        sa.CheckConstraint('amount > 0', name='check_submission_amount_positive'),
    )
    op.create_index('ix_withdrawal_submissions_user_id', 'withdrawal_submissions', ['user_id'])
    op.create_index('idx_submission_state_created', 'withdrawal_submissions', ['state', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('withdrawal_submissions')
    op.drop_table('withdrawals')
    op.drop_table('referral_rewards')
    op.drop_table('deposit_intents')
    op.drop_table('users')
