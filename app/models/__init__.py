"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base
from app.models.deposit_intent import DepositIntent
from app.models.enums import (
    IntentStatus,
    ReviewStatus,
    SubmissionState,
    TransferStatus,
)
from app.models.referral_reward import ReferralReward
from app.models.user import User
from app.models.withdrawal import Withdrawal
from app.models.withdrawal_submission import WithdrawalSubmission

__all__ = [
    "Base",
    # Core
    "User",
    "DepositIntent",
    "ReferralReward",
    # Withdrawals
    "Withdrawal",
    "WithdrawalSubmission",
    # Enums
    "IntentStatus",
    "ReviewStatus",
    "TransferStatus",
    "SubmissionState",
]
