"""
User model.

Ledger view of a registered user: balance, eligibility, tiering, points
and the referral graph.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.config.business_constants import calculate_level
from app.models.base import Base
from app.models.types import MoneyType, UTCDateTime

if TYPE_CHECKING:
    from app.models.deposit_intent import DepositIntent
    from app.models.referral_reward import ReferralReward
    from app.models.withdrawal import Withdrawal


class User(Base):
    """User model - registered platform users."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'balance >= 0', name='check_user_balance_non_negative'
        ),
        CheckConstraint(
            'total_points_earned >= 0',
            name='check_user_points_non_negative'
        ),
        CheckConstraint(
            'level >= 1 AND level <= 100',
            name='check_user_level_range'
        ),
        CheckConstraint(
            'daily_points >= 0 AND referral_points >= 0',
            name='check_user_unconverted_points_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Identity
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    # Notification recipient
    telegram_id: Mapped[int | None] = mapped_column(
        BigInteger, unique=True, nullable=True, index=True
    )

    # Balance (USDT)
    balance: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Eligibility and tiering
    eligible: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )
    category: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # Silver, Gold, Platinum
    total_points_earned: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    level: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )

    # Unconverted points
    daily_points: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    daily_claim_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )  # Claims made on last_daily_claim_date
    last_daily_claim_date: Mapped[date | None] = mapped_column(
        Date, nullable=True
    )  # UTC date
    referral_points: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    # Lifetime value of converted points, not withdrawable
    converted_points_value: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Referral
    referrer_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    # Relationships
    referrer: Mapped[Optional["User"]] = relationship(
        "User",
        remote_side=[id],
        back_populates="referrals",
        foreign_keys=[referrer_id],
    )
    referrals: Mapped[list["User"]] = relationship(
        "User",
        back_populates="referrer",
        foreign_keys=[referrer_id]
    )
    referral_rewards: Mapped[list["ReferralReward"]] = relationship(
        "ReferralReward",
        back_populates="referrer",
        foreign_keys="ReferralReward.referrer_id",
        order_by="ReferralReward.id",
        cascade="all, delete-orphan",
    )
    deposit_intents: Mapped[list["DepositIntent"]] = relationship(
        "DepositIntent",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    withdrawals: Mapped[list["Withdrawal"]] = relationship(
        "Withdrawal",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def expected_level(self) -> int:
        """Level implied by lifetime points."""
        return calculate_level(self.total_points_earned)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, email={self.email}, "
            f"eligible={self.eligible}, balance={self.balance})>"
        )
