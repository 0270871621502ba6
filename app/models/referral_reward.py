"""
Referral reward model.

One entry per referred user whose first deposit paid the referrer.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.types import MoneyType, UTCDateTime

if TYPE_CHECKING:
    from app.models.user import User


class ReferralReward(Base):
    """Referral reward model - referrer payouts."""

    __tablename__ = "referral_rewards"
    __table_args__ = (
        UniqueConstraint(
            'referrer_id', 'referred_user_id',
            name='uq_referral_reward_pair'
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    referred_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )

    # Relationships
    referrer: Mapped["User"] = relationship(
        "User",
        back_populates="referral_rewards",
        foreign_keys=[referrer_id],
    )
    referred_user: Mapped["User"] = relationship(
        "User",
        foreign_keys=[referred_user_id],
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralReward(id={self.id}, referrer_id={self.referrer_id}, "
            f"referred_user_id={self.referred_user_id}, amount={self.amount})>"
        )
