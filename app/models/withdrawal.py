"""
Withdrawal model.

A withdrawal accepted by the exchange. Carries two independent state
machines: the administrative review and the exchange-driven transfer.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import ReviewStatus, TransferStatus
from app.models.types import MoneyType, UTCDateTime

if TYPE_CHECKING:
    from app.models.user import User


class Withdrawal(Base):
    """Withdrawal model - submitted payouts."""

    __tablename__ = "withdrawals"
    __table_args__ = (
        CheckConstraint(
            'amount > 0', name='check_withdrawal_amount_positive'
        ),
        CheckConstraint(
            "review_status IN ('Pending', 'Approved', 'Rejected')",
            name='check_withdrawal_review_status'
        ),
        CheckConstraint(
            "transfer_status IN ('Processing', 'Completed', 'Failed')",
            name='check_withdrawal_transfer_status'
        ),
        Index('idx_withdrawal_transfer_status', 'transfer_status'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Owner
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Transfer details
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(255), nullable=False)
    network: Mapped[str] = mapped_column(
        String(20), nullable=False, default="TRX"
    )
    external_tx_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )  # Exchange withdrawal id
    client_order_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )

    # Administrative review
    review_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value, index=True
    )
    # Exchange-driven transfer
    transfer_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransferStatus.PROCESSING.value
    )
    external_status: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )  # Raw status reported by the exchange

    # Timestamps
    requested_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    transfer_updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="withdrawals",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Withdrawal(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, review={self.review_status}, "
            f"transfer={self.transfer_status})>"
        )
