"""
Withdrawal submission model.

Durable outbox row written together with the balance debit, before the
exchange is called. A row left in ``reserved`` or ``ambiguous`` means the
outcome of the exchange call is unknown and must be reconciled.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import SubmissionState
from app.models.types import MoneyType, UTCDateTime


class WithdrawalSubmission(Base):
    """Withdrawal outbox entry."""

    __tablename__ = "withdrawal_submissions"
    __table_args__ = (
        CheckConstraint(
            'amount > 0', name='check_submission_amount_positive'
        ),
        Index('idx_submission_state_created', 'state', 'created_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(255), nullable=False)
    network: Mapped[str] = mapped_column(String(20), nullable=False)

    # Idempotency key sent to the exchange as withdrawOrderId
    client_order_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubmissionState.RESERVED.value
    )
    withdrawal_id: Mapped[int | None] = mapped_column(
        ForeignKey("withdrawals.id", ondelete="SET NULL"), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WithdrawalSubmission(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, state={self.state})>"
        )
