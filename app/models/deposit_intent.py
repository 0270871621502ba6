"""
Deposit intent model.

A server-issued promise of a unique expected deposit amount. The amount is
the only key that correlates an anonymous exchange deposit with a user.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import IntentStatus
from app.models.types import MoneyType, UTCDateTime

if TYPE_CHECKING:
    from app.models.user import User


WAITING_ONLY = text("status = 'waiting'")


class DepositIntent(Base):
    """Deposit intent model - expected exchange deposits."""

    __tablename__ = "deposit_intents"
    __table_args__ = (
        CheckConstraint(
            'expected_amount > 0',
            name='check_intent_amount_positive'
        ),
        CheckConstraint(
            "status IN ('waiting', 'completed', 'expired')",
            name='check_intent_status'
        ),
        # Amounts are unique among waiting intents only; they are
        # recycled after completion or expiry.
        Index(
            'uq_intent_waiting_amount',
            'expected_amount',
            unique=True,
            postgresql_where=WAITING_ONLY,
            sqlite_where=WAITING_ONLY,
        ),
        # One waiting intent per user
        Index(
            'uq_intent_waiting_user',
            'user_id',
            unique=True,
            postgresql_where=WAITING_ONLY,
            sqlite_where=WAITING_ONLY,
        ),
        Index('idx_intent_status_expires', 'status', 'expires_at'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Owner
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Amounts
    expected_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )
    base_amount: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )  # Plan price the reward is computed from
    category: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )

    # Exchange details
    coin: Mapped[str] = mapped_column(
        String(20), nullable=False, default="USDT"
    )
    network: Mapped[str] = mapped_column(
        String(20), nullable=False, default="TRX"
    )
    deposit_address: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    address_is_fallback: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    external_tx_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IntentStatus.WAITING.value, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="deposit_intents",
    )

    def is_active(self, now: datetime) -> bool:
        """Waiting and not yet past its expiry."""
        return self.status == IntentStatus.WAITING and self.expires_at > now

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DepositIntent(id={self.id}, user_id={self.user_id}, "
            f"expected_amount={self.expected_amount}, status={self.status})>"
        )
