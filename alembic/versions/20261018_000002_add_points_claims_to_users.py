"""Add daily claim and point conversion fields to users.

Revision ID: 20261018_000002
Revises: 20261018_000001
Create Date: 2026-10-18

Daily points are claimed a few times per UTC day; daily and referral
points are later converted into value.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_000002'
down_revision = '20261018_000001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add points columns to users table."""
    # Unconverted daily points
    op.add_column(
        'users',
        sa.Column(
            'daily_points',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Daily claim points not yet converted'
        )
    )

    # Claims made on last_daily_claim_date
    op.add_column(
        'users',
        sa.Column(
            'daily_claim_count',
            sa.Integer(),
            nullable=False,
            server_default='0'
        )
    )
    op.add_column(
        'users',
        sa.Column(
            'last_daily_claim_date',
            sa.Date(),
            nullable=True,
            comment='UTC date of the last daily claim'
        )
    )

    # Unconverted referral points
    op.add_column(
        'users',
        sa.Column(
            'referral_points',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Referral points not yet converted'
        )
    )

    # Lifetime converted value
    op.add_column(
        'users',
        sa.Column(
            'converted_points_value',
            sa.DECIMAL(precision=18, scale=8),
            nullable=False,
            server_default='0'
        )
    )

    op.create_check_constraint(
        'check_user_unconverted_points_non_negative',
        'users',
        'daily_points >= 0 AND referral_points >= 0'
    )


def downgrade() -> None:
    """Remove points columns from users table."""
    op.drop_constraint(
        'check_user_unconverted_points_non_negative',
        'users',
        type_='check'
    )
    op.drop_column('users', 'converted_points_value')
    op.drop_column('users', 'referral_points')
    op.drop_column('users', 'last_daily_claim_date')
    op.drop_column('users', 'daily_claim_count')
    op.drop_column('users', 'daily_points')
